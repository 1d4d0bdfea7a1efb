"""Unit tests for Pydantic API schemas."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from toolfix.api.schemas import (
    ChatRequest,
    DiagnoseRequest,
    DiagnoseResponse,
    DiagnosisRecord,
    MessageRecord,
)


class TestDiagnoseRequest:

    def test_camel_case_payload(self):
        req = DiagnoseRequest.model_validate(
            {"base64Image": "abc", "textDescription": "Leaky tap", "textOnlyMode": True}
        )
        assert req.base64_image == "abc"
        assert req.text_description == "Leaky tap"
        assert req.text_only_mode is True

    def test_all_optional(self):
        req = DiagnoseRequest.model_validate({})
        assert req.base64_image is None
        assert req.text_only_mode is False


class TestDiagnoseResponse:

    def test_serializes_camel_case(self):
        resp = DiagnoseResponse(
            object="Drill", issue="Won't spin", likely_cause="Brushes", task_type="repair",
            result="Object: Drill", instructions="1. Unplug", tool_suggestions="", session_id="s1",
        )
        data = resp.model_dump(by_alias=True)
        assert data["success"] is True
        assert data["likelyCause"] == "Brushes"
        assert data["sessionId"] == "s1"
        assert data["degradedStages"] == []


class TestChatRequest:

    def test_valid(self):
        req = ChatRequest.model_validate({"sessionId": "s1", "userMessage": "hi"})
        assert req.session_id == "s1"
        assert req.user_message == "hi"

    def test_missing_fields_default_empty(self):
        req = ChatRequest.model_validate({})
        assert req.session_id == ""
        assert req.user_message == ""

    def test_message_max_length(self):
        with pytest.raises(ValidationError):
            ChatRequest.model_validate({"sessionId": "s1", "userMessage": "x" * 2001})


class TestRecords:

    def test_invalid_role_rejected(self):
        with pytest.raises(ValidationError):
            MessageRecord(role="system", content="hello")

    def test_diagnosis_record_is_immutable(self):
        record = DiagnosisRecord(object="Drill", issue="x", created_at=datetime.now(timezone.utc))
        assert record.task_type == "unknown"
        with pytest.raises(ValidationError):
            record.object = "Saw"
