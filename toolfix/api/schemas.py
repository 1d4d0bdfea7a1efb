"""Pydantic models for the API layer.

Request and response bodies use the camelCase keys the mobile client sends;
records are also reused by the persistence layer.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageRecord(BaseModel):
    """Single message in a chat transcript."""
    role: Literal["user", "assistant"]
    content: str


class DiagnosisRecord(BaseModel):
    """Structured result of one diagnosis run. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    object: str
    issue: str
    likely_cause: str = ""
    task_type: str = "unknown"
    instructions: str = ""
    tool_suggestions: str = ""
    raw_model_output: str = ""
    requester_id: str | None = None
    created_at: datetime


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DiagnoseRequest(_CamelModel):
    """Payload of the Diagnose call."""
    base64_image: str | None = Field(None, alias="base64Image", description="JPEG/PNG/WebP image, base64")
    text_description: str | None = Field(None, alias="textDescription", max_length=4000)
    text_only_mode: bool = Field(False, alias="textOnlyMode")


class DiagnoseResponse(_CamelModel):
    success: bool = True
    object: str
    issue: str
    likely_cause: str = Field(alias="likelyCause")
    task_type: str = Field(alias="taskType")
    result: str
    instructions: str
    tool_suggestions: str = Field(alias="toolSuggestions")
    session_id: str | None = Field(None, alias="sessionId")
    degraded_stages: list[str] = Field(default_factory=list, alias="degradedStages")


class ChatRequest(_CamelModel):
    """Follow-up message against an existing session."""
    session_id: str = Field("", alias="sessionId")
    user_message: str = Field("", alias="userMessage", max_length=2000)


class ChatResponse(BaseModel):
    success: bool = True
    reply: str


class SessionResponse(_CamelModel):
    session_id: str = Field(alias="sessionId")
    messages: list[MessageRecord]
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class HistoryItem(_CamelModel):
    id: str
    object: str
    issue: str
    likely_cause: str = Field(alias="likelyCause")
    task_type: str = Field(alias="taskType")
    instructions: str
    tool_suggestions: str = Field(alias="toolSuggestions")
    timestamp: datetime


class HistoryResponse(BaseModel):
    results: list[HistoryItem]


class ProfileBody(_CamelModel):
    skill_level: str = Field("", alias="skillLevel")
    tool_preference: str = Field("", alias="toolPreference")


class InventoryAddRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class InventoryResponse(BaseModel):
    tools: list[str]
