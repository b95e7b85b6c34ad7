from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
	"""A failed language-model call. ``str(err)`` is safe to show to users."""

	def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class InvalidAPIKeyError(LLMError):
	pass


class RateLimitError(LLMError):
	pass


class APIError(LLMError):
	pass


class InvalidResponseError(LLMError):
	pass


class NetworkError(LLMError):
	pass


class OpenAIClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key if api_key is not None else settings.openai_api_key
		self.model = model or settings.openai_model
		self.base_url = base_url or settings.openai_base_url
		self._client = httpx.AsyncClient(timeout=settings.openai_timeout_seconds, transport=transport)

	async def chat(
		self,
		messages: List[Dict[str, str]],
		*,
		max_tokens: int,
		temperature: Optional[float] = None,
	) -> str:
		if not self.api_key:
			raise InvalidAPIKeyError("Invalid OpenAI API key. Please check your configuration.")
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": messages,
			"temperature": settings.openai_temperature if temperature is None else temperature,
			"max_tokens": max_tokens,
		}
		headers = {
			"Authorization": f"Bearer {self.api_key}",
			"Content-Type": "application/json",
		}
		try:
			r = await self._client.post(self.base_url, headers=headers, json=payload)
		except httpx.RequestError as net_err:
			logger.warning("LLM request failed: %s", net_err)
			raise NetworkError(f"Network error: {net_err}") from net_err
		self._raise_for_status(r)
		try:
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as parse_err:
			logger.warning("Unexpected LLM response: %s", r.text[:500])
			raise InvalidResponseError("Invalid response from OpenAI API.") from parse_err

	@staticmethod
	def _raise_for_status(r: httpx.Response) -> None:
		code = r.status_code
		if 200 <= code < 300:
			return
		if code == 429:
			raise RateLimitError("Rate limit exceeded. Please try again later.", status_code=code)
		if 400 <= code < 500:
			message: Optional[str] = None
			try:
				message = r.json()["error"]["message"]
			except Exception:
				message = None
			raise APIError(f"OpenAI API error: {message or f'Client error: {code}'}", status_code=code)
		if 500 <= code < 600:
			raise APIError(f"OpenAI API error: Server error: {code}", status_code=code)
		raise InvalidResponseError("Invalid response from OpenAI API.", status_code=code)

	async def aclose(self) -> None:
		await self._client.aclose()
