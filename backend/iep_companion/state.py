"""
Session State Manager
=====================

One AppState exists per signed-in device session. It owns the current
document, the upload session, the chat session and the document history,
and moves them through their states as the document processor, the
analysis service and the chat service report back.

All mutation happens on the event loop, so no locking is used. Long calls
are awaited in place; a second upload or a second document submission while
one is in flight is rejected instead of queued.

Failures from collaborators never propagate out of AppState: they are turned
into a human-readable ``error_message`` and the affected session is left in
a consistent state.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from .analysis import AnalysisService
from .chat import ChatService, ChatSession, Message, MessageStatus
from .documents import DocumentProcessor, ProcessedDocument
from .iep import IEPData, UserRole, extract_student_name
from .language import LanguagePreferences
from .speech import TTSSettings

logger = logging.getLogger(__name__)


class Screen(str, Enum):
	LANDING = "landing"
	ROLE_SELECTION = "role_selection"
	LOGIN = "login"
	SIGNUP = "signup"
	DASHBOARD = "dashboard"
	UPLOAD = "upload"
	ANALYSIS = "analysis"
	QA = "qa"
	PROFILE = "profile"


class UploadStatus(str, Enum):
	IDLE = "idle"
	SELECTING_FILE = "selecting_file"
	PROCESSING_DOCUMENT = "processing_document"
	ANALYZING_DOCUMENT = "analyzing_document"
	COMPLETED = "completed"
	FAILED = "failed"

	@property
	def display_text(self) -> str:
		return _STATUS_TEXT[self]

	@property
	def show_progress(self) -> bool:
		return self in (UploadStatus.PROCESSING_DOCUMENT, UploadStatus.ANALYZING_DOCUMENT)

	@property
	def is_terminal(self) -> bool:
		return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)


_STATUS_TEXT = {
	UploadStatus.IDLE: "Ready to upload",
	UploadStatus.SELECTING_FILE: "Selecting document...",
	UploadStatus.PROCESSING_DOCUMENT: "Processing document...",
	UploadStatus.ANALYZING_DOCUMENT: "Analyzing with AI...",
	UploadStatus.COMPLETED: "Analysis complete",
	UploadStatus.FAILED: "Upload failed",
}


class UploadSession(BaseModel):
	id: str = Field(default_factory=lambda: uuid.uuid4().hex)
	start_time: datetime = Field(default_factory=datetime.utcnow)
	status: UploadStatus = UploadStatus.IDLE
	selected_document: Optional[ProcessedDocument] = None
	analysis_result: Optional[IEPData] = None
	error_message: Optional[str] = None


class AuthBackend(Protocol):
	async def sign_up(self, email: str, password: str, full_name: str, role: UserRole) -> None: ...

	async def sign_in(self, email: str, password: str) -> UserRole: ...


class AppState:
	def __init__(
		self,
		*,
		auth: Optional[AuthBackend] = None,
		document_processor: Optional[DocumentProcessor] = None,
		analysis_service: Optional[AnalysisService] = None,
		chat_service: Optional[ChatService] = None,
	) -> None:
		self.auth = auth
		self.document_processor = document_processor or DocumentProcessor()
		self.analysis_service = analysis_service or AnalysisService()
		self.chat_service = chat_service or ChatService()
		self.language_preferences = LanguagePreferences()
		self.tts_settings = TTSSettings()

		self.current_screen = Screen.LANDING
		self.user_role: Optional[UserRole] = None
		self.user_email: Optional[str] = None
		self.is_logged_in = False
		self.demo_mode = False

		self.current_iep: Optional[IEPData] = None
		self.upload_session: Optional[UploadSession] = None
		self.chat_session: Optional[ChatSession] = None
		self.document_history: List[IEPData] = []

		self.is_processing_document = False
		self.is_performing_secure_operation = False
		self.error_message: Optional[str] = None
		self.showing_error_alert = False
		self.last_activity_at = datetime.utcnow()

	# ---- navigation ----

	def navigate(self, screen: Screen) -> None:
		self.current_screen = screen

	def navigate_to_chat(self) -> None:
		if self.chat_session is None:
			self.start_chat_session()
		self.navigate(Screen.QA)

	def navigate_to_analysis(self) -> None:
		if self.current_iep is not None:
			self.navigate(Screen.ANALYSIS)
		else:
			self.show_error("No document available for analysis")

	def navigate_to_upload(self) -> None:
		self.navigate(Screen.UPLOAD)
		if self.can_start_upload:
			self.start_upload_session()

	# ---- authentication ----

	def proceed_to_login(self, role: UserRole) -> None:
		self.user_role = role
		self.current_screen = Screen.LOGIN

	async def sign_up(self, email: str, password: str, full_name: str, role: Optional[UserRole] = None) -> bool:
		if role is not None:
			self.user_role = role
		if self.user_role is None:
			self.show_error("Please select a role first")
			return False
		if self.auth is None:
			self.show_error("Sign up failed: authentication is not available")
			return False
		self.is_performing_secure_operation = True
		try:
			await self.auth.sign_up(email, password, full_name, self.user_role)
		except Exception as err:
			logger.info("Sign up failed for %s: %s", email, err)
			self.show_error(f"Sign up failed: {err}")
			return False
		finally:
			self.is_performing_secure_operation = False
		self.user_email = email
		self._proceed_to_dashboard()
		return True

	async def sign_in(self, email: str, password: str) -> bool:
		if self.auth is None:
			self.show_error("Sign in failed: authentication is not available")
			return False
		self.is_performing_secure_operation = True
		try:
			role = await self.auth.sign_in(email, password)
		except Exception as err:
			logger.info("Sign in failed for %s: %s", email, err)
			self.show_error(f"Sign in failed: {err}")
			return False
		finally:
			self.is_performing_secure_operation = False
		self.user_role = role
		self.user_email = email
		self._proceed_to_dashboard()
		return True

	def login_demo(self, role: UserRole) -> None:
		self.user_role = role
		self.is_logged_in = True
		self.demo_mode = True
		self.current_screen = Screen.DASHBOARD

	def _proceed_to_dashboard(self) -> None:
		self.is_logged_in = True
		self.current_screen = Screen.DASHBOARD

	def logout(self) -> None:
		self.user_role = None
		self.user_email = None
		self.is_logged_in = False
		self.demo_mode = False
		self.current_iep = None
		self.upload_session = None
		self.chat_session = None
		self.document_history.clear()
		self.current_screen = Screen.LANDING
		self.is_processing_document = False
		self.is_performing_secure_operation = False
		self.clear_error()

	# ---- upload pipeline ----

	def start_upload_session(self) -> bool:
		if not self.can_start_upload:
			self.show_error("An upload is already in progress")
			return False
		self.upload_session = UploadSession()
		return True

	def select_file(self) -> bool:
		session = self.upload_session
		if session is None:
			self.show_error("No active upload session")
			return False
		session.status = UploadStatus.SELECTING_FILE
		return True

	async def process_selected_document(self, path: Path, original_file_name: Optional[str] = None) -> Optional[IEPData]:
		session = self.upload_session
		if session is None:
			self.show_error("No active upload session")
			return None
		if session.status.show_progress or session.status is UploadStatus.COMPLETED:
			self.show_error("This upload session is already processing or complete")
			return None

		session.status = UploadStatus.PROCESSING_DOCUMENT
		session.error_message = None
		self.is_processing_document = True
		try:
			document = await self.document_processor.process(path, original_file_name)
			if self._upload_abandoned(session):
				return None
			session.selected_document = document
			session.status = UploadStatus.ANALYZING_DOCUMENT
			self.language_preferences.detect_and_set_language(document.extracted_text)

			student_name = extract_student_name(document.extracted_text, document.original_file_name)
			analysis = await self.analysis_service.analyze(
				document.extracted_text,
				student_name=student_name,
				language=self.language_preferences.forced_language(),
			)
			if self._upload_abandoned(session):
				return None
			iep = analysis.to_iep_data(document.original_file_name, document)
		except Exception as err:
			if self._upload_abandoned(session):
				return None
			session.status = UploadStatus.FAILED
			session.error_message = f"Failed to process document: {err}"
			self.is_processing_document = False
			logger.warning("Upload %s failed: %s", session.id, err)
			self.show_error(session.error_message)
			return None

		session.status = UploadStatus.COMPLETED
		session.analysis_result = iep
		self.current_iep = iep
		self.document_history.insert(0, iep)
		self.is_processing_document = False
		self.current_screen = Screen.ANALYSIS
		logger.info("Upload %s completed for %s", session.id, iep.student_name)
		return iep

	def _upload_abandoned(self, session: UploadSession) -> bool:
		# Cancelled, replaced or logged out while a collaborator was running
		if self.upload_session is session:
			return False
		logger.info("Discarding result of abandoned upload %s", session.id)
		return True

	def complete_upload(self) -> None:
		self.upload_session = None

	def cancel_upload(self) -> None:
		self.upload_session = None
		self.is_processing_document = False

	# ---- documents ----

	def select_document(self, iep: IEPData) -> None:
		self.current_iep = iep
		self.chat_session = None

	def find_document(self, document_id: str) -> Optional[IEPData]:
		for iep in self.document_history:
			if iep.document_id == document_id or iep.id == document_id:
				return iep
		return None

	# ---- chat ----

	def start_chat_session(self) -> bool:
		document = self.current_iep
		if document is None:
			self.show_error("No document available for chat")
			return False
		self.chat_session = ChatSession.start(
			document_id=document.document_id,
			student_name=document.student_name,
			file_name=document.file_name,
		)
		return True

	def end_chat_session(self) -> None:
		self.chat_session = None

	def clear_chat_session(self) -> None:
		self.end_chat_session()

	async def send_message(self, text: str) -> Optional[Message]:
		session = self.chat_session
		iep = self.current_iep
		if session is None or iep is None or iep.original_document is None:
			self.show_error("No active chat session or document")
			return None

		history = list(session.messages)
		user_message = Message(text=text, is_from_user=True, status=MessageStatus.SENDING)
		session.add_message(user_message)

		try:
			reply = await self.chat_service.ask(
				text,
				iep.original_document.extracted_text,
				history,
				language=self.language_preferences.forced_language(),
			)
		except Exception as err:
			user_message.status = MessageStatus.FAILED
			self.show_error(f"Failed to get response: {err}")
			return None

		user_message.status = MessageStatus.SENT

		# The session may have been ended or replaced while waiting
		if self.chat_session is not session:
			return None
		ai_message = Message(text=reply, is_from_user=False, status=MessageStatus.RECEIVED)
		session.add_message(ai_message)
		return ai_message

	# ---- errors ----

	def show_error(self, message: str) -> None:
		self.error_message = message
		self.showing_error_alert = True

	def clear_error(self) -> None:
		self.error_message = None
		self.showing_error_alert = False

	# ---- derived state ----

	@property
	def can_start_upload(self) -> bool:
		active = self.upload_session is not None and not self.upload_session.status.is_terminal
		return not active and not self.is_processing_document

	@property
	def can_start_chat(self) -> bool:
		return self.current_iep is not None and self.chat_session is None

	@property
	def has_active_document(self) -> bool:
		return self.current_iep is not None

	@property
	def has_document_history(self) -> bool:
		return bool(self.document_history)

	@property
	def is_chat_active(self) -> bool:
		return self.chat_session is not None and self.has_active_document

	@property
	def chat_message_count(self) -> int:
		return self.chat_session.message_count if self.chat_session else 0

	@property
	def upload_progress(self) -> float:
		session = self.upload_session
		if session is None:
			return 0.0
		status = session.status
		if status is UploadStatus.SELECTING_FILE:
			return 0.1
		if status is UploadStatus.PROCESSING_DOCUMENT:
			return self.document_processor.processing_progress * 0.5
		if status is UploadStatus.ANALYZING_DOCUMENT:
			return 0.5 + (0.4 if self.analysis_service.is_loading else 0.5)
		if status is UploadStatus.COMPLETED:
			return 1.0
		return 0.0

	@property
	def upload_status_text(self) -> str:
		if self.upload_session is None:
			return "Ready to upload"
		return self.upload_session.status.display_text

	def touch(self) -> None:
		self.last_activity_at = datetime.utcnow()


class AppStateStore:
	"""AppState registry keyed by auth session id."""

	def __init__(self) -> None:
		self._states: Dict[str, AppState] = {}

	def get(self, session_id: str) -> Optional[AppState]:
		return self._states.get(session_id)

	def put(self, session_id: str, state: AppState) -> AppState:
		self._states[session_id] = state
		return state

	def get_or_create(self, session_id: str) -> AppState:
		state = self._states.get(session_id)
		if state is None:
			state = self.put(session_id, AppState())
		return state

	def drop(self, session_id: str) -> Optional[AppState]:
		return self._states.pop(session_id, None)

	def purge_idle(self, threshold: datetime) -> int:
		stale = [sid for sid, s in self._states.items() if s.last_activity_at < threshold]
		for sid in stale:
			del self._states[sid]
		return len(stale)

	def __len__(self) -> int:
		return len(self._states)


app_states = AppStateStore()
