"""Contract tests for the LLM adapter (mocked, no real API calls)."""

import time

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from toolfix.core.llm_adapter import (
    LLMAdapter,
    LLMError,
    LLMUnavailableError,
    has_image,
    to_langchain_messages,
)

TEXT_PROMPT = [{"role": "user", "content": "Hello"}]
IMAGE_PROMPT = [{
    "role": "user",
    "content": [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}},
    ],
}]


@pytest.fixture
def adapter(monkeypatch):
    monkeypatch.setenv("CEREBRAS_API_KEY", "test-cerebras-key")
    monkeypatch.setenv("GROQ_API_KEY", "test-groq-key")
    monkeypatch.setenv("CEREBRAS_MODEL", "test-cerebras-model")
    monkeypatch.setenv("GROQ_MODEL", "test-groq-model")
    monkeypatch.setenv("GROQ_VISION_MODEL", "test-vision-model")
    monkeypatch.setenv("LLM_TIMEOUT", "1")
    return LLMAdapter()


class TestLLMAdapterInit:

    def test_loads_keys(self, adapter):
        assert adapter.cerebras_key == "test-cerebras-key"
        assert adapter.groq_key == "test-groq-key"
        assert adapter.vision_model_name == "test-vision-model"
        assert adapter.is_healthy()


class TestLLMFailover:

    def test_cerebras_success(self, adapter, mocker):
        mock_invoke = mocker.patch("langchain_cerebras.ChatCerebras.invoke")
        mock_invoke.return_value = AIMessage(content="Cerebras response")

        assert adapter.complete(TEXT_PROMPT) == "Cerebras response"
        mock_invoke.assert_called_once()

    def test_timeout_falls_back_to_groq(self, adapter, mocker):
        from httpx import ReadTimeout

        mocker.patch("langchain_cerebras.ChatCerebras.invoke", side_effect=ReadTimeout("Timeout"))
        mock_groq = mocker.patch("langchain_groq.ChatGroq.invoke")
        mock_groq.return_value = AIMessage(content="Groq response")

        assert adapter.complete(TEXT_PROMPT) == "Groq response"
        mock_groq.assert_called_once()

    def test_4xx_does_not_fallback(self, adapter, mocker):
        from httpx import HTTPStatusError, Request, Response

        resp = Response(status_code=400, request=Request("POST", "http://test"))
        err = HTTPStatusError("Bad Request", request=resp.request, response=resp)

        mocker.patch("langchain_cerebras.ChatCerebras.invoke", side_effect=err)
        mock_groq = mocker.patch("langchain_groq.ChatGroq.invoke")

        with pytest.raises(LLMError) as exc:
            adapter.complete(TEXT_PROMPT)

        assert "400" in str(exc.value)
        mock_groq.assert_not_called()

    def test_both_fail_raises_unavailable(self, adapter, mocker):
        from httpx import ReadTimeout

        mocker.patch("langchain_cerebras.ChatCerebras.invoke", side_effect=ReadTimeout("T1"))
        mocker.patch("langchain_groq.ChatGroq.invoke", side_effect=ReadTimeout("T2"))

        with pytest.raises(LLMUnavailableError):
            adapter.complete(TEXT_PROMPT)


class TestVision:

    def test_image_prompt_skips_cerebras(self, adapter, mocker):
        mock_cerebras = mocker.patch("langchain_cerebras.ChatCerebras.invoke")
        mock_groq = mocker.patch("langchain_groq.ChatGroq.invoke")
        mock_groq.return_value = AIMessage(content="Object: Drill\nIssue: Won't spin")

        assert adapter.complete(IMAGE_PROMPT).startswith("Object: Drill")
        mock_cerebras.assert_not_called()
        sent = mock_groq.call_args.args[0]
        assert isinstance(sent[0], HumanMessage)
        assert sent[0].content[1]["type"] == "image_url"

    def test_vision_failure_is_unavailable(self, adapter, mocker):
        mocker.patch("langchain_groq.ChatGroq.invoke", side_effect=RuntimeError("model overloaded"))
        with pytest.raises(LLMUnavailableError):
            adapter.complete(IMAGE_PROMPT)


class TestDeadline:

    def test_slow_call_abandoned(self, adapter, mocker):
        adapter.call_deadline = 0.05
        mocker.patch.object(adapter, "invoke_with_failover", side_effect=lambda _: time.sleep(0.5))

        with pytest.raises(LLMUnavailableError, match="deadline"):
            adapter.complete(TEXT_PROMPT)

    def test_client_timeout_capped_at_deadline(self, monkeypatch):
        monkeypatch.setenv("CEREBRAS_API_KEY", "test-cerebras-key")
        monkeypatch.setenv("GROQ_API_KEY", "test-groq-key")
        monkeypatch.setenv("LLM_TIMEOUT", "30")
        monkeypatch.setenv("LLM_CALL_DEADLINE", "5")
        adapter = LLMAdapter()
        assert adapter.timeout == 5
        assert adapter.call_deadline == 5.0


class TestMessageConversion:

    def test_roles_mapped(self):
        converted = to_langchain_messages([
            {"role": "system", "content": "s"},
            {"role": "user", "content": "u"},
            {"role": "assistant", "content": "a"},
        ])
        assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage]

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            to_langchain_messages([{"role": "tool", "content": "x"}])

    def test_has_image(self):
        assert has_image(IMAGE_PROMPT)
        assert not has_image(TEXT_PROMPT)

    def test_list_content_reply_joined(self, adapter, mocker):
        mocker.patch(
            "langchain_cerebras.ChatCerebras.invoke",
            return_value=AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Two."}]),
        )
        assert adapter.complete(TEXT_PROMPT) == "Part one. Two."
