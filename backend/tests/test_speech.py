import asyncio
import io
import wave
from types import SimpleNamespace

import pytest

from iep_companion.language import SupportedLanguage
from iep_companion.speech import (
	SpeechError,
	SpeechToTextService,
	TextToSpeechService,
	TTSSettings,
	clean_text_for_speech,
	dedupe_transcript,
	wav_duration_seconds,
)


def _wav(seconds: float, rate: int = 8000) -> bytes:
	buf = io.BytesIO()
	with wave.open(buf, "wb") as w:
		w.setnchannels(1)
		w.setsampwidth(2)
		w.setframerate(rate)
		w.writeframes(b"\x00\x00" * int(seconds * rate))
	return buf.getvalue()


class FakeSpeechClient:
	def __init__(self, transcripts):
		self.transcripts = transcripts
		self.config = None

	def recognize(self, config, audio):
		self.config = config
		results = [SimpleNamespace(alternatives=[SimpleNamespace(transcript=t)]) for t in self.transcripts]
		return SimpleNamespace(results=results)


def test_clean_text_for_speech_strips_markdown():
	text = "## Summary\n**Strengths**\n\n- Clear goals\n• Good services"
	assert clean_text_for_speech(text) == "Summary Strengths. Item: Clear goals Item: Good services"
	assert clean_text_for_speech("1. First step") == "Item First step"


def test_dedupe_transcript_collapses_repeats():
	assert dedupe_transcript("what what are the the goals") == "what are the goals"
	assert dedupe_transcript("reading goal reading goal for Maya") == "reading goal for Maya"
	assert dedupe_transcript("   ") == ""


def test_wav_duration():
	assert wav_duration_seconds(_wav(2.0)) == pytest.approx(2.0)
	assert wav_duration_seconds(b"not a wav") is None


def test_transcribe_passes_language_and_dedupes():
	client = FakeSpeechClient(["¿Qué metas metas tiene", "Maya?"])
	service = SpeechToTextService(client_factory=lambda: client)

	transcript = asyncio.run(service.transcribe(_wav(1.0), SupportedLanguage.SPANISH))

	assert transcript == "¿Qué metas tiene Maya?"
	assert client.config.language_code == "es-US"


def test_transcribe_rejects_long_recordings():
	client = FakeSpeechClient(["never used"])
	service = SpeechToTextService(client_factory=lambda: client, max_duration_seconds=5)

	with pytest.raises(SpeechError):
		asyncio.run(service.transcribe(_wav(6.0), SupportedLanguage.ENGLISH))
	# Compressed audio relies on the client-reported length
	with pytest.raises(SpeechError):
		asyncio.run(service.transcribe(b"webm-bytes", SupportedLanguage.ENGLISH, duration_seconds=61))
	assert client.config is None


def test_transcribe_reports_silence():
	service = SpeechToTextService(client_factory=lambda: FakeSpeechClient([]))
	with pytest.raises(SpeechError) as exc:
		asyncio.run(service.transcribe(_wav(1.0), SupportedLanguage.ENGLISH))
	assert "No speech was recognized" in str(exc.value)


def test_synthesize_uses_settings(monkeypatch):
	calls = []

	def fake_synthesize(text, lang, tld, slow):
		calls.append((text, lang, tld, slow))
		return b"ID3-mp3"

	monkeypatch.setattr(TextToSpeechService, "_synthesize", staticmethod(fake_synthesize))
	service = TextToSpeechService()

	audio = asyncio.run(service.synthesize("**Hola**", SupportedLanguage.SPANISH, TTSSettings(rate=0.2, voice_identifier="com.mx")))
	assert audio == b"ID3-mp3"
	assert calls == [("Hola", "es", "com.mx", True)]

	asyncio.run(service.synthesize("Hello", SupportedLanguage.ENGLISH))
	assert calls[-1] == ("Hello", "en", "us", False)

	with pytest.raises(SpeechError):
		asyncio.run(service.synthesize("Hello", SupportedLanguage.ENGLISH, TTSSettings(is_enabled=False)))
