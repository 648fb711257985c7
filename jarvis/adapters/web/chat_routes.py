"""Chat API routes — message in, turn out, per-action confirmation."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from jarvis.domain.errors import NotFound
from jarvis.domain.models import ConversationTurn, Decision
from jarvis.domain.pipeline import ActionPipeline, create_pipeline
from jarvis.ports.inbound import IncomingMessage

chat_router = APIRouter(prefix="/chat", tags=["Chat"])

_pipeline: Optional[ActionPipeline] = None


def get_pipeline() -> ActionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = create_pipeline()
    return _pipeline


def set_pipeline(pipeline: Optional[ActionPipeline]) -> None:
    global _pipeline
    _pipeline = pipeline


class MessageRequest(BaseModel):
    user_id: str = Field(min_length=1)
    message: str


class DecisionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    decision: Decision


class ExecuteRequest(BaseModel):
    user_id: str = Field(min_length=1)


class TurnResponse(BaseModel):
    id: str
    conversationId: Optional[str] = None
    response: str
    actions: List[Dict[str, Any]]
    needsConfirmation: bool
    notices: List[str]
    metadata: Dict[str, Any]
    createdAt: str


class DecisionResponse(BaseModel):
    changed: int
    turn: TurnResponse


class ExecuteResponse(BaseModel):
    turnId: str
    summary: str
    success: bool
    results: List[Dict[str, Any]]


def _turn(turn: ConversationTurn) -> TurnResponse:
    return TurnResponse(**turn.to_dict())


@chat_router.post("/{conversation_id}/messages", response_model=TurnResponse)
async def post_message(conversation_id: str, req: MessageRequest, pipeline: ActionPipeline = Depends(get_pipeline)):
    turn = await pipeline.handle(IncomingMessage(conversation_id, req.user_id, req.message))
    return _turn(turn)


@chat_router.get("/{conversation_id}/turns/{turn_id}", response_model=TurnResponse)
async def get_turn(conversation_id: str, turn_id: str, pipeline: ActionPipeline = Depends(get_pipeline)):
    try:
        return _turn(pipeline.get_turn(conversation_id, turn_id))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@chat_router.post("/{conversation_id}/turns/{turn_id}/actions/{action_id}", response_model=DecisionResponse)
async def decide_action(
    conversation_id: str,
    turn_id: str,
    action_id: str,
    req: DecisionRequest,
    pipeline: ActionPipeline = Depends(get_pipeline),
):
    try:
        changed = pipeline.decide(conversation_id, turn_id, action_id, req.decision, user_id=req.user_id)
        return DecisionResponse(changed=int(changed), turn=_turn(pipeline.get_turn(conversation_id, turn_id)))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@chat_router.post("/{conversation_id}/turns/{turn_id}/decision", response_model=DecisionResponse)
async def decide_all(
    conversation_id: str,
    turn_id: str,
    req: DecisionRequest,
    pipeline: ActionPipeline = Depends(get_pipeline),
):
    try:
        changed = pipeline.decide_all(conversation_id, turn_id, req.decision, user_id=req.user_id)
        return DecisionResponse(changed=changed, turn=_turn(pipeline.get_turn(conversation_id, turn_id)))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@chat_router.post("/{conversation_id}/turns/{turn_id}/execute", response_model=ExecuteResponse)
async def execute_turn(
    conversation_id: str,
    turn_id: str,
    req: ExecuteRequest,
    pipeline: ActionPipeline = Depends(get_pipeline),
):
    try:
        report = await pipeline.execute(conversation_id, turn_id, req.user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExecuteResponse(**report.to_dict())
