"""FastAPI endpoints for the ToolFix API.

POST /diagnose - run the diagnosis pipeline on an image and/or description
POST /chat - follow-up question against a diagnosis chat session
GET /sessions/{session_id} - fetch a session transcript
GET /history - caller's past diagnoses, newest first
GET|PUT /profile, GET|POST|DELETE /inventory - personalization data
GET /health - component health check
"""

from fastapi import APIRouter, Depends, Request

from toolfix.api.auth import get_caller_id, require_caller_id
from toolfix.api.schemas import (
    ChatRequest,
    ChatResponse,
    DiagnoseRequest,
    DiagnoseResponse,
    HistoryItem,
    HistoryResponse,
    InventoryAddRequest,
    InventoryResponse,
    ProfileBody,
    SessionResponse,
)
from toolfix.core.user_context import (
    add_inventory_tool,
    get_profile,
    list_inventory,
    remove_inventory_tool,
    save_profile,
)
from toolfix.pipeline.request import DiagnosisRequest

router = APIRouter()


@router.post("/diagnose", response_model=DiagnoseResponse)
def diagnose(body: DiagnoseRequest, req: Request, caller_id: str | None = Depends(get_caller_id)):
    """Identify the object and issue, then generate cause, instructions and tool suggestions."""
    request = DiagnosisRequest.from_payload(
        base64_image=body.base64_image,
        text_description=body.text_description,
        text_only_mode=body.text_only_mode,
        requester_id=caller_id,
    )
    outcome = req.app.state.pipeline.diagnose(request)
    record = outcome.record

    return DiagnoseResponse(
        object=record.object,
        issue=record.issue,
        likely_cause=record.likely_cause,
        task_type=record.task_type,
        result=record.raw_model_output,
        instructions=record.instructions,
        tool_suggestions=record.tool_suggestions,
        session_id=outcome.session_id,
        degraded_stages=outcome.degraded,
    )


@router.post("/chat", response_model=ChatResponse)
def chat(body: ChatRequest, req: Request, caller_id: str | None = Depends(get_caller_id)):
    """Send a follow-up message; the whole transcript is replayed to the model."""
    reply = req.app.state.chat.send(body.session_id, caller_id, body.user_message)
    return ChatResponse(reply=reply)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_chat_session(session_id: str, req: Request, caller_id: str | None = Depends(get_caller_id)):
    """Fetch the full transcript of a session the caller owns."""
    chat_session = req.app.state.chat.load_owned(session_id, caller_id)
    return SessionResponse(
        session_id=chat_session.id,
        messages=chat_session.messages,
        created_at=chat_session.created_at,
        updated_at=chat_session.updated_at,
    )


@router.get("/history", response_model=HistoryResponse)
def history(req: Request, caller_id: str = Depends(require_caller_id)):
    rows = req.app.state.archive.list_for_owner(caller_id)
    return HistoryResponse(results=[
        HistoryItem(
            id=record_id,
            object=record.object,
            issue=record.issue,
            likely_cause=record.likely_cause,
            task_type=record.task_type,
            instructions=record.instructions,
            tool_suggestions=record.tool_suggestions,
            timestamp=record.created_at,
        )
        for record_id, record in rows
    ])


@router.get("/profile", response_model=ProfileBody)
def read_profile(caller_id: str = Depends(require_caller_id)):
    return ProfileBody(**get_profile(caller_id))


@router.put("/profile", response_model=ProfileBody)
def update_profile(body: ProfileBody, caller_id: str = Depends(require_caller_id)):
    save_profile(caller_id, body.skill_level, body.tool_preference)
    return body


@router.get("/inventory", response_model=InventoryResponse)
def read_inventory(caller_id: str = Depends(require_caller_id)):
    return InventoryResponse(tools=list_inventory(caller_id))


@router.post("/inventory", response_model=InventoryResponse)
def add_tool(body: InventoryAddRequest, caller_id: str = Depends(require_caller_id)):
    add_inventory_tool(caller_id, body.name)
    return InventoryResponse(tools=list_inventory(caller_id))


@router.delete("/inventory/{name}", response_model=InventoryResponse)
def remove_tool(name: str, caller_id: str = Depends(require_caller_id)):
    remove_inventory_tool(caller_id, name)
    return InventoryResponse(tools=list_inventory(caller_id))


@router.get("/health")
def health(req: Request):
    """Check health of all backend components."""
    components = {}

    llm = req.app.state.llm_adapter
    if llm is not None:
        components["cerebras"] = "ok" if llm.cerebras_key else "error"
        components["groq"] = "ok" if llm.groq_key else "error"
    else:
        components["completion"] = "ok" if req.app.state.pipeline is not None else "error"

    try:
        from toolfix.core.database import get_session
        with get_session() as session:
            session.connection()
        components["database"] = "ok"
    except Exception:
        components["database"] = "error"

    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "toolfix-api"}
