import asyncio
from datetime import datetime, timedelta
from pathlib import Path

from conftest import SAMPLE_IEP_TEXT, FakeAnalysisService, FakeChatService, FakeProcessor, make_analysis, make_document

from iep_companion.chat import MessageStatus, MessageType
from iep_companion.documents import EmptyDocumentError
from iep_companion.iep import UserRole
from iep_companion.language import SupportedLanguage
from iep_companion.openai_client import APIError, NetworkError
from iep_companion.state import AppState, AppStateStore, Screen, UploadStatus

DOC_PATH = Path("maya_iep.txt")


def _upload(state: AppState):
	assert state.start_upload_session()
	state.select_file()
	return asyncio.run(state.process_selected_document(DOC_PATH, "maya_iep.txt"))


def test_upload_session_rejected_while_one_is_active(app_state):
	assert app_state.start_upload_session()
	first = app_state.upload_session

	assert not app_state.start_upload_session()
	assert app_state.upload_session is first
	assert app_state.error_message == "An upload is already in progress"
	assert not app_state.can_start_upload


def test_new_upload_session_replaces_a_finished_one(app_state):
	_upload(app_state)
	assert app_state.upload_session.status is UploadStatus.COMPLETED

	assert app_state.start_upload_session()
	assert app_state.upload_session.status is UploadStatus.IDLE
	assert app_state.upload_progress == 0.0


def test_successful_upload_becomes_current_and_newest(app_state, fake_analysis):
	assert app_state.start_upload_session()
	app_state.select_file()
	assert app_state.upload_session.status is UploadStatus.SELECTING_FILE
	assert app_state.upload_progress == 0.1

	iep = asyncio.run(app_state.process_selected_document(DOC_PATH, "maya_iep.txt"))

	assert iep is not None
	assert app_state.current_iep is iep
	assert app_state.document_history == [iep]
	assert app_state.upload_session.status is UploadStatus.COMPLETED
	assert app_state.upload_session.analysis_result is iep
	assert app_state.upload_progress == 1.0
	assert app_state.upload_status_text == "Analysis complete"
	assert app_state.current_screen is Screen.ANALYSIS
	assert not app_state.is_processing_document
	assert iep.student_name == "Maya Johnson"
	assert iep.file_name == "maya_iep.txt"
	assert iep.original_document.extracted_text == SAMPLE_IEP_TEXT
	assert fake_analysis.calls[0]["student_name"] == "Maya Johnson"


def test_history_is_most_recent_first(app_state):
	first = _upload(app_state)
	second = _upload(app_state)

	assert app_state.document_history == [second, first]
	assert app_state.current_iep is second
	assert first.document_id != second.document_id


def test_processing_failure_marks_session_failed_and_keeps_history(fake_analysis, fake_chat):
	state = AppState(
		document_processor=FakeProcessor(error=EmptyDocumentError()),
		analysis_service=fake_analysis,
		chat_service=fake_chat,
	)
	previous = make_analysis().to_iep_data("earlier.pdf", make_document())
	state.current_iep = previous
	state.document_history = [previous]

	assert _upload(state) is None

	session = state.upload_session
	assert session.status is UploadStatus.FAILED
	assert session.error_message == f"Failed to process document: {EmptyDocumentError.message}"
	assert state.error_message == session.error_message
	assert state.showing_error_alert
	assert state.document_history == [previous]
	assert state.current_iep is previous
	assert not state.is_processing_document
	assert state.can_start_upload
	assert fake_analysis.calls == []


def test_analysis_failure_fails_the_upload(fake_processor, fake_chat):
	state = AppState(
		document_processor=fake_processor,
		analysis_service=FakeAnalysisService(error=APIError("OpenAI API error: Server error: 500")),
		chat_service=fake_chat,
	)

	assert _upload(state) is None
	assert state.upload_session.status is UploadStatus.FAILED
	assert state.error_message == "Failed to process document: OpenAI API error: Server error: 500"
	assert state.document_history == []
	assert state.current_iep is None


def test_failed_session_can_be_retried(fake_analysis, fake_chat):
	processor = FakeProcessor(error=EmptyDocumentError())
	state = AppState(document_processor=processor, analysis_service=fake_analysis, chat_service=fake_chat)
	assert _upload(state) is None

	processor.error = None
	iep = asyncio.run(state.process_selected_document(DOC_PATH, "maya_iep.txt"))
	assert iep is not None
	assert state.upload_session.status is UploadStatus.COMPLETED
	assert state.upload_session.error_message is None


def test_completed_session_rejects_a_second_document(app_state, fake_processor):
	_upload(app_state)
	iep = asyncio.run(app_state.process_selected_document(DOC_PATH))

	assert iep is None
	assert len(app_state.document_history) == 1
	assert len(fake_processor.calls) == 1


def test_cancelled_upload_discards_the_processed_document(app_state, fake_processor, fake_analysis):
	assert app_state.start_upload_session()
	app_state.select_file()
	fake_processor.during_call = app_state.cancel_upload

	iep = asyncio.run(app_state.process_selected_document(DOC_PATH, "maya_iep.txt"))

	assert iep is None
	assert app_state.upload_session is None
	assert app_state.current_iep is None
	assert app_state.document_history == []
	assert app_state.current_screen is not Screen.ANALYSIS
	assert app_state.error_message is None
	assert fake_analysis.calls == []


def test_logout_during_analysis_discards_the_result(app_state, fake_analysis):
	app_state.login_demo(UserRole.PARENT)
	fake_analysis.during_call = app_state.logout

	assert _upload(app_state) is None
	assert not app_state.is_logged_in
	assert app_state.current_iep is None
	assert app_state.document_history == []
	assert app_state.current_screen is Screen.LANDING


def test_replaced_upload_does_not_fail_the_new_session(fake_analysis, fake_chat):
	state = AppState(
		document_processor=FakeProcessor(error=EmptyDocumentError()),
		analysis_service=fake_analysis,
		chat_service=fake_chat,
	)

	def replace_session():
		state.cancel_upload()
		state.start_upload_session()

	state.document_processor.during_call = replace_session

	assert _upload(state) is None
	assert state.upload_session.status is UploadStatus.IDLE
	assert state.upload_session.error_message is None
	assert state.error_message is None


def test_processing_without_session_is_rejected(app_state, fake_processor):
	assert asyncio.run(app_state.process_selected_document(DOC_PATH)) is None
	assert app_state.error_message == "No active upload session"
	assert fake_processor.calls == []


def test_spanish_document_switches_language_when_auto_detecting(fake_analysis, fake_chat):
	text = "Plan educativo individualizado. Estudiante: Sofía. Objetivos de lectura y matemáticas."
	state = AppState(
		document_processor=FakeProcessor(document=make_document(text, "sofia.txt")),
		analysis_service=fake_analysis,
		chat_service=fake_chat,
	)

	_upload(state)

	assert state.language_preferences.current_language is SupportedLanguage.SPANISH
	# Auto-detect leaves the choice to the analysis service
	assert fake_analysis.calls[0]["language"] is None


def test_fixed_language_is_forced_on_analysis(app_state, fake_analysis):
	app_state.language_preferences.auto_detect_language = False
	app_state.language_preferences.set_language(SupportedLanguage.SPANISH)

	_upload(app_state)

	assert fake_analysis.calls[0]["language"] is SupportedLanguage.SPANISH


def test_chat_needs_a_current_document(app_state):
	assert not app_state.can_start_chat
	assert not app_state.start_chat_session()
	assert app_state.chat_session is None
	assert app_state.error_message == "No document available for chat"


def test_chat_session_starts_with_welcome_message(app_state):
	_upload(app_state)
	assert app_state.can_start_chat
	assert app_state.start_chat_session()

	session = app_state.chat_session
	assert session.document_id == app_state.current_iep.document_id
	assert session.messages[0].message_type is MessageType.SYSTEM
	assert "Maya Johnson" in session.messages[0].text
	assert app_state.chat_message_count == 0
	assert app_state.is_chat_active


def test_send_message_appends_question_then_reply(app_state, fake_chat):
	_upload(app_state)
	app_state.start_chat_session()

	reply = asyncio.run(app_state.send_message("What services does Maya get?"))

	messages = app_state.chat_session.messages
	assert reply is messages[-1]
	assert not reply.is_from_user
	assert reply.text == fake_chat.reply
	assert messages[-2].is_from_user
	assert messages[-2].text == "What services does Maya get?"
	assert messages[-2].status is MessageStatus.SENT
	assert reply.status is MessageStatus.RECEIVED
	assert app_state.chat_message_count == 2
	# History sent to the model stops before the new question
	history = fake_chat.calls[0]["history"]
	assert len(history) == 1
	assert history[0].message_type is MessageType.SYSTEM


def test_failed_reply_keeps_the_question(app_state, fake_chat):
	_upload(app_state)
	app_state.start_chat_session()
	fake_chat.error = NetworkError("Network error: connection reset")

	reply = asyncio.run(app_state.send_message("Is there a reading goal?"))

	assert reply is None
	last = app_state.chat_session.messages[-1]
	assert last.is_from_user
	assert last.text == "Is there a reading goal?"
	assert last.status is MessageStatus.FAILED
	assert app_state.error_message == "Failed to get response: Network error: connection reset"


def test_reply_is_dropped_when_chat_ends_mid_request(app_state, fake_chat):
	_upload(app_state)
	app_state.start_chat_session()
	session = app_state.chat_session
	fake_chat.during_call = app_state.end_chat_session

	reply = asyncio.run(app_state.send_message("Who provides speech therapy?"))

	assert reply is None
	assert app_state.chat_session is None
	assert session.messages[-1].is_from_user


def test_send_message_without_session_fails(app_state, fake_chat):
	assert asyncio.run(app_state.send_message("Hello")) is None
	assert app_state.error_message == "No active chat session or document"
	assert fake_chat.calls == []


def test_selecting_another_document_ends_chat(app_state):
	first = _upload(app_state)
	_upload(app_state)
	app_state.start_chat_session()

	app_state.select_document(app_state.find_document(first.document_id))

	assert app_state.current_iep is first
	assert app_state.chat_session is None


def test_navigation_helpers(app_state):
	app_state.navigate_to_analysis()
	assert app_state.error_message == "No document available for analysis"
	assert app_state.current_screen is Screen.LANDING

	app_state.navigate_to_upload()
	assert app_state.current_screen is Screen.UPLOAD
	assert app_state.upload_session is not None

	asyncio.run(app_state.process_selected_document(DOC_PATH))
	app_state.navigate_to_chat()
	assert app_state.current_screen is Screen.QA
	assert app_state.chat_session is not None


def test_logout_resets_state(app_state):
	app_state.login_demo(UserRole.TEACHER)
	_upload(app_state)
	app_state.start_chat_session()

	app_state.logout()

	assert not app_state.is_logged_in
	assert not app_state.demo_mode
	assert app_state.user_role is None
	assert app_state.current_iep is None
	assert app_state.upload_session is None
	assert app_state.chat_session is None
	assert app_state.document_history == []
	assert app_state.current_screen is Screen.LANDING


def test_sign_in_failure_is_reported(app_state):
	class RejectingAuth:
		async def sign_up(self, email, password, full_name, role):
			raise ValueError("An account with this email already exists")

		async def sign_in(self, email, password):
			raise ValueError("Invalid email or password")

	app_state.auth = RejectingAuth()
	assert not asyncio.run(app_state.sign_in("a@example.com", "wrong-password"))
	assert app_state.error_message == "Sign in failed: Invalid email or password"
	assert not app_state.is_logged_in

	app_state.proceed_to_login(UserRole.PARENT)
	assert not asyncio.run(app_state.sign_up("a@example.com", "password1", "Ann"))
	assert app_state.error_message == "Sign up failed: An account with this email already exists"


def test_store_purges_idle_states():
	store = AppStateStore()
	fresh = store.get_or_create("fresh")
	stale = store.get_or_create("stale")
	stale.last_activity_at = datetime.utcnow() - timedelta(days=10)

	removed = store.purge_idle(datetime.utcnow() - timedelta(days=7))

	assert removed == 1
	assert store.get("fresh") is fresh
	assert store.get("stale") is None
	assert len(store) == 1
