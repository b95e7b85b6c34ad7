import os
import tempfile

# Settings are read at import time, so the environment must be ready first
_tmp_dir = tempfile.mkdtemp(prefix="iep-companion-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp_dir}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["ANALYSIS_FALLBACK_ON_ERROR"] = "false"

from typing import Any, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from iep_companion.documents import DocumentType, ProcessedDocument  # noqa: E402
from iep_companion.iep import DocumentAnalysis, IEPGoal, IEPService  # noqa: E402
from iep_companion.state import AppState  # noqa: E402

SAMPLE_IEP_TEXT = (
	"Individualized Education Program\n"
	"Student: Maya Johnson\n"
	"Grade: 4\n"
	"Goal 1: Maya will read grade-level passages with 90% accuracy.\n"
	"Services: Speech therapy, 30 minutes weekly, provided by the school SLP.\n"
)


def make_document(text: str = SAMPLE_IEP_TEXT, file_name: str = "maya_iep.txt") -> ProcessedDocument:
	return ProcessedDocument(
		original_file_name=file_name,
		file_size=len(text.encode("utf-8")),
		extracted_text=text,
		word_count=len(text.split()),
		file_type=DocumentType.TXT,
	)


def make_analysis(student_name: str = "Maya Johnson") -> DocumentAnalysis:
	return DocumentAnalysis(
		student_name=student_name,
		summary="The plan targets reading fluency with weekly speech support.",
		overall_score=82,
		strengths=["Measurable reading goal"],
		concerns=["No progress reporting schedule"],
		recommendations=["Add quarterly progress reports"],
		goals=[IEPGoal(area="Reading", goal="Read with 90% accuracy", progress=60)],
		services=[IEPService(service="Speech therapy", frequency="30 min weekly", provider="SLP")],
	)


class FakeProcessor:
	def __init__(self, document: Optional[ProcessedDocument] = None, error: Optional[Exception] = None):
		self.document = document or make_document()
		self.error = error
		self.processing_progress = 0.0
		self.calls: List[Any] = []
		self.during_call = None

	async def process(self, path, original_file_name=None):
		self.calls.append((path, original_file_name))
		if self.during_call is not None:
			self.during_call()
		if self.error is not None:
			raise self.error
		return self.document


class FakeAnalysisService:
	def __init__(self, error: Optional[Exception] = None):
		self.error = error
		self.is_loading = False
		self.calls: List[Dict[str, Any]] = []
		self.during_call = None

	async def analyze(self, document_text, student_name="Student", language=None):
		self.calls.append({"text": document_text, "student_name": student_name, "language": language})
		if self.during_call is not None:
			self.during_call()
		if self.error is not None:
			raise self.error
		return make_analysis(student_name)


class FakeChatService:
	def __init__(self, reply: str = "Maya receives 30 minutes of speech therapy each week.", error: Optional[Exception] = None):
		self.reply = reply
		self.error = error
		self.calls: List[Dict[str, Any]] = []
		# Runs while the request is "in flight"
		self.during_call = None

	async def ask(self, question, document_text, history=(), language=None):
		self.calls.append({"question": question, "history": list(history), "language": language})
		if self.during_call is not None:
			self.during_call()
		if self.error is not None:
			raise self.error
		return self.reply


@pytest.fixture
def fake_processor():
	return FakeProcessor()


@pytest.fixture
def fake_analysis():
	return FakeAnalysisService()


@pytest.fixture
def fake_chat():
	return FakeChatService()


@pytest.fixture
def app_state(fake_processor, fake_analysis, fake_chat):
	return AppState(
		document_processor=fake_processor,
		analysis_service=fake_analysis,
		chat_service=fake_chat,
	)
