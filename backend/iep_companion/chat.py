from __future__ import annotations
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .language import SupportedLanguage, detect_language, response_instruction
from .openai_client import LLMError, OpenAIClient
from .settings import settings

logger = logging.getLogger(__name__)

QA_SYSTEM_PROMPT = """
You are an expert special education consultant helping to answer questions about IEP and 504 plan documents.

Guidelines:
- Provide accurate, helpful answers based on the document content
- If information isn't in the document, clearly state that
- Offer practical suggestions when appropriate
- Use clear, accessible language
- Focus on actionable insights
- Consider different perspectives (parent, teacher, student)
- Reference specific sections of the document when relevant

Always be supportive and constructive in your responses.
""".strip()


class MessageType(str, Enum):
	TEXT = "text"
	SYSTEM = "system"


class MessageStatus(str, Enum):
	SENDING = "sending"
	SENT = "sent"
	FAILED = "failed"
	RECEIVED = "received"


class Message(BaseModel):
	id: str = Field(default_factory=lambda: uuid.uuid4().hex)
	text: str
	is_from_user: bool
	timestamp: datetime = Field(default_factory=datetime.utcnow)
	message_type: MessageType = MessageType.TEXT
	status: MessageStatus = MessageStatus.SENT


class ChatSession(BaseModel):
	id: str = Field(default_factory=lambda: uuid.uuid4().hex)
	document_id: str
	student_name: str
	file_name: str
	messages: List[Message] = Field(default_factory=list)
	created_at: datetime = Field(default_factory=datetime.utcnow)
	last_message_at: datetime = Field(default_factory=datetime.utcnow)

	@classmethod
	def start(cls, document_id: str, student_name: str, file_name: str) -> "ChatSession":
		session = cls(document_id=document_id, student_name=student_name, file_name=file_name)
		session.messages.append(
			Message(
				text=f"Hi! I'm here to help you understand {student_name}'s document. What would you like to know?",
				is_from_user=False,
				message_type=MessageType.SYSTEM,
			)
		)
		return session

	def add_message(self, message: Message) -> None:
		self.messages.append(message)
		self.last_message_at = datetime.utcnow()

	@property
	def message_count(self) -> int:
		return sum(1 for m in self.messages if m.message_type is MessageType.TEXT)

	@property
	def last_user_message(self) -> Optional[Message]:
		for m in reversed(self.messages):
			if m.is_from_user and m.message_type is MessageType.TEXT:
				return m
		return None

	@property
	def last_ai_message(self) -> Optional[Message]:
		for m in reversed(self.messages):
			if not m.is_from_user and m.message_type is MessageType.TEXT:
				return m
		return None


def build_chat_messages(
	question: str,
	document_text: str,
	history: Sequence[Message],
	window: int,
) -> List[Dict[str, str]]:
	messages: List[Dict[str, str]] = [
		{"role": "system", "content": QA_SYSTEM_PROMPT},
		{"role": "user", "content": f"Here is the document to analyze:\n\n{document_text}"},
	]
	recent = list(history)[-window:] if window > 0 else []
	for m in recent:
		messages.append({"role": "user" if m.is_from_user else "assistant", "content": m.text})
	messages.append({"role": "user", "content": question})
	return messages


class ChatService:
	def __init__(self, client_factory: Callable[[], OpenAIClient] = OpenAIClient) -> None:
		self._client_factory = client_factory
		self.is_loading = False
		self.last_error: Optional[LLMError] = None
		self.current_language = SupportedLanguage.ENGLISH

	async def ask(
		self,
		question: str,
		document_text: str,
		history: Sequence[Message] = (),
		language: Optional[SupportedLanguage] = None,
	) -> str:
		target = language or detect_language(question)
		self.current_language = target
		contextual_question = response_instruction(target) + question
		self.is_loading = True
		self.last_error = None
		client = self._client_factory()
		try:
			return await client.chat(
				build_chat_messages(contextual_question, document_text, history, settings.chat_history_window),
				max_tokens=settings.chat_max_tokens,
			)
		except LLMError as err:
			self.last_error = err
			logger.warning("Chat request failed: %s", err)
			raise
		finally:
			self.is_loading = False
			await client.aclose()
