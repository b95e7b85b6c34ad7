from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..iep import UserRole
from ..language import SupportedLanguage
from ..state import AppState, Screen
from .auth import get_app_state

router = APIRouter(prefix="/state", tags=["state"])


class StateSnapshot(BaseModel):
	current_screen: Screen
	user_role: Optional[UserRole] = None
	user_email: Optional[str] = None
	is_logged_in: bool
	demo_mode: bool
	current_document_id: Optional[str] = None
	current_student_name: Optional[str] = None
	document_count: int
	has_active_document: bool
	has_document_history: bool
	can_start_upload: bool
	can_start_chat: bool
	is_chat_active: bool
	chat_message_count: int
	is_processing_document: bool
	upload_progress: float
	upload_status_text: str
	current_language: SupportedLanguage
	error_message: Optional[str] = None
	showing_error_alert: bool


class NavigateRequest(BaseModel):
	screen: Screen


def snapshot(state: AppState) -> StateSnapshot:
	iep = state.current_iep
	return StateSnapshot(
		current_screen=state.current_screen,
		user_role=state.user_role,
		user_email=state.user_email,
		is_logged_in=state.is_logged_in,
		demo_mode=state.demo_mode,
		current_document_id=iep.document_id if iep else None,
		current_student_name=iep.student_name if iep else None,
		document_count=len(state.document_history),
		has_active_document=state.has_active_document,
		has_document_history=state.has_document_history,
		can_start_upload=state.can_start_upload,
		can_start_chat=state.can_start_chat,
		is_chat_active=state.is_chat_active,
		chat_message_count=state.chat_message_count,
		is_processing_document=state.is_processing_document,
		upload_progress=state.upload_progress,
		upload_status_text=state.upload_status_text,
		current_language=state.language_preferences.current_language,
		error_message=state.error_message,
		showing_error_alert=state.showing_error_alert,
	)


@router.get("", response_model=StateSnapshot)
async def get_state(state: AppState = Depends(get_app_state)):
	return snapshot(state)


@router.post("/navigate", response_model=StateSnapshot)
async def navigate(req: NavigateRequest, state: AppState = Depends(get_app_state)):
	# Screens with preconditions go through the guarded helpers
	if req.screen is Screen.QA:
		state.navigate_to_chat()
		if state.chat_session is None:
			raise HTTPException(status_code=409, detail=state.error_message)
	elif req.screen is Screen.ANALYSIS:
		state.navigate_to_analysis()
		if state.current_iep is None:
			raise HTTPException(status_code=409, detail=state.error_message)
	elif req.screen is Screen.UPLOAD:
		state.navigate_to_upload()
	else:
		state.navigate(req.screen)
	return snapshot(state)


@router.delete("/error", response_model=StateSnapshot)
async def clear_error(state: AppState = Depends(get_app_state)):
	state.clear_error()
	return snapshot(state)
