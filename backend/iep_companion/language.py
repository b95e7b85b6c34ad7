from __future__ import annotations
import logging
from enum import Enum
from typing import List

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SupportedLanguage(str, Enum):
	ENGLISH = "en"
	SPANISH = "es"

	@property
	def display_name(self) -> str:
		return "Español" if self is SupportedLanguage.SPANISH else "English"

	@property
	def voice_language_code(self) -> str:
		return "es-US" if self is SupportedLanguage.SPANISH else "en-US"


# Spanish words that rarely show up in English IEP documents
STRONG_SPANISH_INDICATORS: List[str] = [
	"niño", "niña", "educación", "análisis", "español", "por qué", "cómo", "dónde", "cuándo",
	"estudiante", "objetivos", "metas", "servicios", "apoyo", "necesidades especiales",
	"plan educativo", "educativo individualizado", "progreso académico", "habilidades",
	"lectura", "matemáticas", "escritura", "comunicación", "comportamiento",
]

CLEAR_SPANISH_PHRASES: List[str] = [
	"plan educativo individualizado",
	"necesidades especiales",
	"educación especial",
	"objetivos académicos",
	"metas educativas",
]


def detect_language(text: str) -> SupportedLanguage:
	"""Guess the language of ``text``, defaulting to English.

	Spanish wins with three or more strong indicators, or with a single one
	when the text is shorter than 100 words.
	"""
	lowered = (text or "").lower()
	word_count = len(lowered.split())
	matches = [w for w in STRONG_SPANISH_INDICATORS if w in lowered]
	if len(matches) >= 3 or (word_count < 100 and len(matches) >= 1):
		return SupportedLanguage.SPANISH
	return SupportedLanguage.ENGLISH


def detect_language_conservative(text: str) -> SupportedLanguage:
	lowered = (text or "").lower()
	for phrase in CLEAR_SPANISH_PHRASES:
		if phrase in lowered:
			return SupportedLanguage.SPANISH
	return SupportedLanguage.ENGLISH


def response_instruction(language: SupportedLanguage) -> str:
	if language is SupportedLanguage.SPANISH:
		return "Por favor responde en español. "
	return "Please respond in English. "


class LanguagePreferences(BaseModel):
	current_language: SupportedLanguage = SupportedLanguage.ENGLISH
	auto_detect_language: bool = True

	def set_language(self, language: SupportedLanguage) -> None:
		self.current_language = language

	def detect_and_set_language(self, text: str) -> SupportedLanguage:
		if self.auto_detect_language:
			detected = detect_language(text)
			if detected is not self.current_language:
				self.current_language = detected
				logger.info("Language auto-detected: %s", detected.display_name)
		return self.current_language

	def forced_language(self) -> SupportedLanguage | None:
		"""The language to force on the model, or None to detect per request."""
		return None if self.auto_detect_language else self.current_language
