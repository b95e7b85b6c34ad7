from __future__ import annotations
import json
import logging
from typing import Tuple

from sqlalchemy.orm import Session

from .language import LanguagePreferences, SupportedLanguage
from .models import UserPreferences
from .speech import TTSSettings

logger = logging.getLogger(__name__)


def load_preferences(db: Session, username: str) -> Tuple[LanguagePreferences, TTSSettings]:
	row = db.get(UserPreferences, username)
	if row is None:
		return LanguagePreferences(), TTSSettings()
	try:
		language = SupportedLanguage(row.language)
	except ValueError:
		language = SupportedLanguage.ENGLISH
	lang_prefs = LanguagePreferences(current_language=language, auto_detect_language=bool(row.auto_detect_language))
	tts = TTSSettings()
	if row.tts_settings_json:
		try:
			tts = TTSSettings(**json.loads(row.tts_settings_json))
		except Exception:
			logger.warning("Ignoring unreadable TTS settings for %s", username)
	return lang_prefs, tts


def save_language_preferences(db: Session, username: str, prefs: LanguagePreferences) -> None:
	row = db.get(UserPreferences, username) or UserPreferences(username=username)
	row.language = prefs.current_language.value
	row.auto_detect_language = prefs.auto_detect_language
	db.add(row)
	db.commit()


def save_tts_settings(db: Session, username: str, tts: TTSSettings) -> None:
	row = db.get(UserPreferences, username) or UserPreferences(username=username)
	row.tts_settings_json = tts.model_dump_json()
	db.add(row)
	db.commit()
