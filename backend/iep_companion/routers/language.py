from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..language import SupportedLanguage, detect_language, detect_language_conservative
from ..preferences import save_language_preferences
from ..state import AppState
from .auth import User, get_app_state, get_current_user

router = APIRouter(prefix="/language", tags=["language"])


class LanguageOption(BaseModel):
	code: SupportedLanguage
	display_name: str
	voice_language_code: str


class LanguageResponse(BaseModel):
	current_language: SupportedLanguage
	display_name: str
	auto_detect_language: bool
	supported: List[LanguageOption]


class LanguageUpdate(BaseModel):
	language: Optional[SupportedLanguage] = None
	auto_detect_language: Optional[bool] = None


class DetectRequest(BaseModel):
	text: str = Field(min_length=1)
	# Short, mixed snippets such as chat questions
	conservative: bool = False


class DetectResponse(BaseModel):
	language: SupportedLanguage
	display_name: str


def _response(state: AppState) -> LanguageResponse:
	prefs = state.language_preferences
	return LanguageResponse(
		current_language=prefs.current_language,
		display_name=prefs.current_language.display_name,
		auto_detect_language=prefs.auto_detect_language,
		supported=[
			LanguageOption(code=lang, display_name=lang.display_name, voice_language_code=lang.voice_language_code)
			for lang in SupportedLanguage
		],
	)


@router.get("", response_model=LanguageResponse)
async def get_language(state: AppState = Depends(get_app_state)):
	return _response(state)


@router.put("", response_model=LanguageResponse)
async def update_language(
	req: LanguageUpdate,
	user: User = Depends(get_current_user),
	state: AppState = Depends(get_app_state),
	db: Session = Depends(get_db),
):
	prefs = state.language_preferences
	if req.language is not None:
		prefs.set_language(req.language)
	if req.auto_detect_language is not None:
		prefs.auto_detect_language = req.auto_detect_language
	# Guest sessions keep preferences in memory only
	if not user.demo:
		save_language_preferences(db, user.username, prefs)
	return _response(state)


@router.post("/detect", response_model=DetectResponse)
async def detect(req: DetectRequest, user: User = Depends(get_current_user)):
	lang = detect_language_conservative(req.text) if req.conservative else detect_language(req.text)
	return DetectResponse(language=lang, display_name=lang.display_name)
