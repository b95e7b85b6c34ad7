from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..chat import ChatSession, Message, MessageStatus
from ..state import AppState
from .auth import get_app_state

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatSessionResponse(BaseModel):
	id: str
	document_id: str
	student_name: str
	file_name: str
	created_at: datetime
	last_message_at: datetime
	message_count: int
	messages: List[Message]


class SendMessageRequest(BaseModel):
	text: str = Field(min_length=1, max_length=4000)


class SendMessageResponse(BaseModel):
	user_message: Message
	reply: Optional[Message] = None


def to_response(session: ChatSession) -> ChatSessionResponse:
	return ChatSessionResponse(
		id=session.id,
		document_id=session.document_id,
		student_name=session.student_name,
		file_name=session.file_name,
		created_at=session.created_at,
		last_message_at=session.last_message_at,
		message_count=session.message_count,
		messages=session.messages,
	)


async def send_and_respond(state: AppState, text: str) -> SendMessageResponse:
	"""Send ``text`` through the state manager and shape the HTTP result.

	A missing session is a 404. When the model call fails the user's message
	stays in the session marked failed and the error is reported as a 502.
	"""
	session = state.chat_session
	if session is None or state.current_iep is None:
		raise HTTPException(status_code=404, detail="No active chat session or document")
	state.clear_error()
	sent_before = session.message_count
	reply = await state.send_message(text)
	if session.message_count == sent_before:
		raise HTTPException(status_code=404, detail=state.error_message or "No active chat session or document")
	user_message = session.last_user_message
	if user_message.status is MessageStatus.FAILED:
		raise HTTPException(status_code=502, detail=state.error_message)
	return SendMessageResponse(user_message=user_message, reply=reply)


@router.post("/start", response_model=ChatSessionResponse)
async def start_chat(state: AppState = Depends(get_app_state)):
	state.navigate_to_chat()
	if state.chat_session is None:
		raise HTTPException(status_code=404, detail=state.error_message)
	return to_response(state.chat_session)


@router.get("", response_model=ChatSessionResponse)
async def get_chat(state: AppState = Depends(get_app_state)):
	if state.chat_session is None:
		raise HTTPException(status_code=404, detail="No active chat session")
	return to_response(state.chat_session)


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(req: SendMessageRequest, state: AppState = Depends(get_app_state)):
	return await send_and_respond(state, req.text)


@router.delete("")
async def end_chat(state: AppState = Depends(get_app_state)):
	state.end_chat_session()
	return {"ok": True}
