"""
Voice endpoints: read text aloud and turn a recorded question into text.

Audio travels as base64 in JSON bodies. Synthesized speech is returned as
``audio/mpeg``.
"""

from __future__ import annotations
import base64
import binascii
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..language import SupportedLanguage
from ..preferences import save_tts_settings
from ..speech import SpeechError, SpeechToTextService, TextToSpeechService, TTSSettings
from ..state import AppState
from .auth import User, get_app_state, get_current_user
from .chat import SendMessageResponse, send_and_respond

router = APIRouter(prefix="/speech", tags=["speech"])

logger = logging.getLogger(__name__)


def get_tts_service() -> TextToSpeechService:
	return TextToSpeechService()


def get_stt_service() -> SpeechToTextService:
	return SpeechToTextService()


class SpeakRequest(BaseModel):
	text: Optional[str] = Field(default=None, max_length=20000)
	# Read a chat message aloud instead of free text
	message_id: Optional[str] = None
	language: Optional[SupportedLanguage] = None


class TranscribeRequest(BaseModel):
	audio_base64: str
	duration_seconds: Optional[float] = Field(default=None, ge=0)
	language: Optional[SupportedLanguage] = None


class TranscribeResponse(BaseModel):
	transcript: str
	language: SupportedLanguage


def _decode_audio(audio_base64: str) -> bytes:
	try:
		return base64.b64decode(audio_base64, validate=True)
	except (binascii.Error, ValueError):
		raise HTTPException(status_code=400, detail="Audio must be base64 encoded")


@router.get("/settings", response_model=TTSSettings)
async def get_settings(state: AppState = Depends(get_app_state)):
	return state.tts_settings


@router.put("/settings", response_model=TTSSettings)
async def update_settings(
	req: TTSSettings,
	user: User = Depends(get_current_user),
	state: AppState = Depends(get_app_state),
	db: Session = Depends(get_db),
):
	state.tts_settings = req
	if not user.demo:
		save_tts_settings(db, user.username, req)
	return req


@router.post("/tts")
async def speak(
	req: SpeakRequest,
	state: AppState = Depends(get_app_state),
	tts: TextToSpeechService = Depends(get_tts_service),
):
	text = req.text
	if req.message_id:
		session = state.chat_session
		message = next((m for m in session.messages if m.id == req.message_id), None) if session else None
		if message is None:
			raise HTTPException(status_code=404, detail="Message not found")
		text = message.text
	if not text or not text.strip():
		raise HTTPException(status_code=400, detail="Nothing to read aloud")

	tts_settings = state.tts_settings
	if not tts_settings.is_enabled:
		raise HTTPException(status_code=409, detail="Text-to-speech is turned off")
	language = req.language or state.language_preferences.current_language
	try:
		audio = await tts.synthesize(text, language, tts_settings)
	except SpeechError as e:
		logger.warning("TTS failed: %s", e)
		raise HTTPException(status_code=502, detail=str(e))
	return Response(content=audio, media_type="audio/mpeg")


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(
	req: TranscribeRequest,
	state: AppState = Depends(get_app_state),
	stt: SpeechToTextService = Depends(get_stt_service),
):
	language = req.language or state.language_preferences.current_language
	audio = _decode_audio(req.audio_base64)
	try:
		transcript = await stt.transcribe(audio, language, duration_seconds=req.duration_seconds)
	except SpeechError as e:
		raise HTTPException(status_code=422, detail=str(e))
	return TranscribeResponse(transcript=transcript, language=language)


@router.post("/ask", response_model=SendMessageResponse)
async def ask_by_voice(
	req: TranscribeRequest,
	state: AppState = Depends(get_app_state),
	stt: SpeechToTextService = Depends(get_stt_service),
):
	"""Transcribe a spoken question and send it to the document chat."""
	if state.chat_session is None:
		raise HTTPException(status_code=404, detail="No active chat session")
	language = req.language or state.language_preferences.current_language
	audio = _decode_audio(req.audio_base64)
	try:
		transcript = await stt.transcribe(audio, language, duration_seconds=req.duration_seconds)
	except SpeechError as e:
		raise HTTPException(status_code=422, detail=str(e))
	return await send_and_respond(state, transcript)
