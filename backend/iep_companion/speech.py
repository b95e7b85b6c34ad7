"""
Speech services: read AI answers aloud and transcribe spoken questions.

Synthesis uses gTTS and returns MP3 bytes. Recognition uses Google Cloud
Speech-to-Text; recordings are capped at a fixed maximum duration.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import wave
from typing import Any, Callable, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import speech_v1p1beta1 as speech
from gtts import gTTS, gTTSError
from pydantic import BaseModel, Field

from .language import SupportedLanguage
from .settings import settings

logger = logging.getLogger(__name__)

# Rates below this use gTTS's slow voice
SLOW_RATE_THRESHOLD = 0.4


class SpeechError(Exception):
	pass


class TTSSettings(BaseModel):
	is_enabled: bool = True
	# Read AI responses aloud as soon as they arrive
	auto_play: bool = False
	rate: float = Field(default=0.5, ge=0.1, le=1.0)
	# gTTS top-level domain selecting the regional accent, e.g. "us", "co.uk", "com.mx"
	voice_identifier: Optional[str] = None


def clean_text_for_speech(text: str) -> str:
	s = text or ""
	for marker in ("**", "*", "###", "##", "#"):
		s = s.replace(marker, "")
	s = s.replace("• ", "Item: ").replace("- ", "Item: ")
	s = re.sub(r"^\d+\.\s*", "Item ", s)
	s = re.sub(r"\n\n+", ". ", s)
	s = s.replace("\n", " ")
	s = re.sub(r"  +", " ", s)
	return s.strip()


def dedupe_transcript(text: str) -> str:
	"""Collapse repeated 1-3 word phrases left by interim/final result overlap."""
	s = re.sub(r"\s+", " ", text or "").strip()
	if not s:
		return s
	patterns = [
		(r"\b(\w+\s+\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+)(?:\s+\1\b)+", r"\1"),
	]
	for pat, rep in patterns:
		s = re.sub(pat, rep, s, flags=re.IGNORECASE)
	return re.sub(r"\s+", " ", s).strip()


def wav_duration_seconds(audio: bytes) -> Optional[float]:
	try:
		with wave.open(io.BytesIO(audio), "rb") as wav:
			rate = wav.getframerate()
			return wav.getnframes() / float(rate) if rate else None
	except (wave.Error, EOFError):
		return None


class TextToSpeechService:
	async def synthesize(self, text: str, language: SupportedLanguage, tts_settings: Optional[TTSSettings] = None) -> bytes:
		prefs = tts_settings or TTSSettings()
		if not prefs.is_enabled:
			raise SpeechError("Text-to-speech is disabled")
		cleaned = clean_text_for_speech(text)
		if not cleaned:
			raise SpeechError("Nothing to read aloud")
		tld = prefs.voice_identifier or "us"
		slow = prefs.rate < SLOW_RATE_THRESHOLD
		logger.debug("Synthesizing %d chars lang=%s tld=%s slow=%s", len(cleaned), language.value, tld, slow)
		return await asyncio.to_thread(self._synthesize, cleaned, language.value, tld, slow)

	@staticmethod
	def _synthesize(text: str, lang: str, tld: str, slow: bool) -> bytes:
		mp3_fp = io.BytesIO()
		try:
			tts = gTTS(text=text, lang=lang, tld=tld, slow=slow)
			tts.write_to_fp(mp3_fp)
		except (gTTSError, ValueError) as err:
			raise SpeechError(f"Speech synthesis failed: {err}") from err
		return mp3_fp.getvalue()


class SpeechToTextService:
	def __init__(self, client_factory: Callable[[], Any] = speech.SpeechClient, *, max_duration_seconds: Optional[float] = None) -> None:
		self._client_factory = client_factory
		self.max_duration_seconds = max_duration_seconds or settings.voice_max_recording_seconds

	async def transcribe(
		self,
		audio: bytes,
		language: SupportedLanguage,
		*,
		duration_seconds: Optional[float] = None,
	) -> str:
		if not audio:
			raise SpeechError("Empty audio payload received.")
		duration = wav_duration_seconds(audio)
		if duration is None:
			duration = duration_seconds
		if duration is not None and duration > self.max_duration_seconds:
			raise SpeechError(f"Recording is longer than the {int(self.max_duration_seconds)} second limit.")
		return await asyncio.to_thread(self._recognize, audio, language)

	def _recognize(self, audio: bytes, language: SupportedLanguage) -> str:
		try:
			client = self._client_factory()
		except Exception as e:
			raise SpeechError(f"Speech recognition unavailable: {e}") from e

		config = speech.RecognitionConfig(
			language_code=language.voice_language_code,
			model="default",
			enable_automatic_punctuation=True,
			profanity_filter=True,
		)
		try:
			response = client.recognize(config=config, audio=speech.RecognitionAudio(content=audio))
		except GoogleAPIError as e:
			raise SpeechError(f"Speech recognition API error: {e}") from e

		pieces = [r.alternatives[0].transcript for r in response.results if r.alternatives]
		transcript = dedupe_transcript(" ".join(pieces))
		if not transcript:
			raise SpeechError("No speech was recognized. Please try again.")
		return transcript
