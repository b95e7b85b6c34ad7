"""
IEP Analysis Service
====================

Sends extracted IEP/504 text to the language model and turns the reply into
a DocumentAnalysis. The model is asked for strict JSON; anything it returns
around the JSON object is ignored, and a reply that cannot be parsed yields
a generic fallback analysis in the target language.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from .iep import DocumentAnalysis, GoalStatus, IEPGoal, IEPService
from .language import SupportedLanguage, detect_language
from .openai_client import LLMError, OpenAIClient
from .settings import settings

logger = logging.getLogger(__name__)

ANALYST_SYSTEM_PROMPT = (
	"You are an expert special education analyst specializing in IEP and 504 plan analysis. "
	"Provide detailed, actionable insights."
)


def _language_header(language: SupportedLanguage) -> str:
	if language is SupportedLanguage.SPANISH:
		return (
			"IMPORTANTE: Responde solo en español. Todos los valores de texto del JSON deben estar en español, "
			"pero conserva las claves y los valores de \"status\" exactamente como se indican."
		)
	return "IMPORTANT: Respond in English only."


def build_analysis_prompt(document_text: str, student_name: str, language: SupportedLanguage) -> str:
	return f"""
{_language_header(language)}

You are an expert special education analyst. Analyze the following IEP/504 plan document for {student_name} and return ONLY a valid JSON response with no additional text, explanations, or formatting.

CRITICAL: Your response must start with {{ and end with }}. Do not include any text before or after the JSON.

Required JSON format:
{{
  "summary": "A 2-3 sentence overview of the document and key insights",
  "overallScore": 85,
  "strengths": ["List of 3-5 key strengths identified in the document"],
  "concerns": ["List of 3-5 areas that need attention or improvement"],
  "recommendations": ["List of 4-6 specific, actionable recommendations"],
  "goals": [
    {{
      "area": "Academic/Behavioral/Social/etc",
      "goal": "Specific goal description",
      "status": "On Track|Needs Attention|Behind",
      "progress": 75
    }}
  ],
  "services": [
    {{
      "service": "Service name",
      "frequency": "How often",
      "provider": "Who provides it"
    }}
  ]
}}

Analysis guidelines:
- Focus on educational goals and their measurability
- Evaluate appropriateness of services and accommodations
- Assess progress monitoring methods
- Consider transition planning if applicable
- Review parent involvement and communication
- Identify areas for improvement

Document to analyze:
{document_text}

Remember: Return ONLY the JSON object, no other text.
""".strip()


def clean_json_response(response: str) -> str:
	trimmed = (response or "").strip()
	start = trimmed.find("{")
	end = trimmed.rfind("}")
	if start == -1 or end == -1 or end < start:
		return trimmed
	return trimmed[start:end + 1]


def _as_int(value: Any, default: int) -> int:
	if isinstance(value, bool):
		return default
	try:
		return int(value)
	except (TypeError, ValueError):
		return default


def _as_str_list(value: Any, default: List[str]) -> List[str]:
	if not isinstance(value, list):
		return list(default)
	return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def parse_goals(data: Any) -> List[IEPGoal]:
	goals: List[IEPGoal] = []
	if not isinstance(data, list):
		return goals
	for item in data:
		if not isinstance(item, dict):
			continue
		area = item.get("area")
		goal = item.get("goal")
		if not isinstance(area, str) or not isinstance(goal, str):
			continue
		try:
			status = GoalStatus(str(item.get("status") or GoalStatus.ON_TRACK.value))
		except ValueError:
			status = GoalStatus.ON_TRACK
		progress = max(0, min(100, _as_int(item.get("progress"), 50)))
		goals.append(IEPGoal(area=area, goal=goal, status=status, progress=progress))
	return goals


def parse_services(data: Any) -> List[IEPService]:
	services: List[IEPService] = []
	if not isinstance(data, list):
		return services
	for item in data:
		if not isinstance(item, dict):
			continue
		values = [item.get("service"), item.get("frequency"), item.get("provider")]
		if not all(isinstance(v, str) for v in values):
			continue
		services.append(IEPService(service=values[0], frequency=values[1], provider=values[2]))
	return services


def fallback_analysis(student_name: str, language: SupportedLanguage = SupportedLanguage.ENGLISH) -> DocumentAnalysis:
	if language is SupportedLanguage.SPANISH:
		return DocumentAnalysis(
			student_name=student_name,
			summary="Análisis del documento completado. El documento ha sido procesado y la información clave ha sido extraída para revisión.",
			overall_score=75,
			strengths=[
				"Documento cargado y procesado exitosamente",
				"El contenido es accesible para análisis",
				"La estructura permite una revisión significativa",
			],
			concerns=[
				"Algunos detalles pueden requerir clarificación adicional",
				"Se recomienda revisión adicional para secciones específicas",
			],
			recommendations=[
				"Revisar los resultados del análisis cuidadosamente",
				"Usar la función de preguntas y respuestas para hacer preguntas específicas",
				"Considerar discutir los hallazgos con su equipo de IEP",
				"Monitorear la implementación de mejoras sugeridas",
			],
			goals=[IEPGoal(area="General", goal="Revisión y análisis del documento", status=GoalStatus.ON_TRACK, progress=75)],
			services=[IEPService(service="Análisis de Documento", frequency="Según sea necesario", provider="Asistente de IA")],
		)
	return DocumentAnalysis(
		student_name=student_name,
		summary="Document analysis completed. The document has been processed and key information has been extracted for review.",
		overall_score=75,
		strengths=[
			"Document successfully uploaded and processed",
			"Content is accessible for analysis",
			"Structure allows for meaningful review",
		],
		concerns=[
			"Some details may require additional clarification",
			"Further review recommended for specific sections",
		],
		recommendations=[
			"Review analysis results carefully",
			"Use the Q&A feature to ask specific questions",
			"Consider discussing findings with your IEP team",
			"Monitor implementation of suggested improvements",
		],
		goals=[IEPGoal(area="General", goal="Document review and analysis", status=GoalStatus.ON_TRACK, progress=75)],
		services=[IEPService(service="Document Analysis", frequency="As needed", provider="AI Assistant")],
	)


def parse_analysis_response(
	response: str,
	student_name: str,
	language: SupportedLanguage = SupportedLanguage.ENGLISH,
) -> DocumentAnalysis:
	"""Build a DocumentAnalysis from the model's reply.

	Args:
		response: Raw model output, possibly wrapped in prose or code fences
		student_name: Name carried onto the result
		language: Language of the fallback analysis

	Returns:
		The parsed analysis; missing keys take defaults, and an unparseable
		reply returns the fallback analysis.
	"""
	cleaned = clean_json_response(response)
	try:
		data = json.loads(cleaned)
	except Exception:
		logger.warning("Analysis reply was not valid JSON (%d chars); using fallback", len(response or ""))
		return fallback_analysis(student_name, language)
	if not isinstance(data, dict):
		logger.warning("Analysis reply was not a JSON object; using fallback")
		return fallback_analysis(student_name, language)
	summary = data.get("summary")
	return DocumentAnalysis(
		student_name=student_name,
		summary=summary.strip() if isinstance(summary, str) and summary.strip() else "Analysis completed successfully.",
		overall_score=_as_int(data.get("overallScore"), 75),
		strengths=_as_str_list(data.get("strengths"), ["Document structure is clear"]),
		concerns=_as_str_list(data.get("concerns"), ["Some areas may need additional detail"]),
		recommendations=_as_str_list(data.get("recommendations"), ["Continue current approach", "Monitor progress regularly"]),
		goals=parse_goals(data.get("goals")),
		services=parse_services(data.get("services")),
	)


class AnalysisService:
	def __init__(self, client_factory: Callable[[], OpenAIClient] = OpenAIClient, *, fallback_on_error: Optional[bool] = None) -> None:
		self._client_factory = client_factory
		self.fallback_on_error = settings.analysis_fallback_on_error if fallback_on_error is None else fallback_on_error
		self.is_loading = False
		self.last_error: Optional[LLMError] = None
		self.current_language = SupportedLanguage.ENGLISH

	async def analyze(
		self,
		document_text: str,
		student_name: str = "Student",
		language: Optional[SupportedLanguage] = None,
	) -> DocumentAnalysis:
		target = language or detect_language(document_text)
		self.current_language = target
		self.is_loading = True
		self.last_error = None
		client = self._client_factory()
		try:
			raw = await client.chat(
				[
					{"role": "system", "content": ANALYST_SYSTEM_PROMPT},
					{"role": "user", "content": build_analysis_prompt(document_text, student_name, target)},
				],
				max_tokens=settings.analysis_max_tokens,
			)
		except LLMError as err:
			self.last_error = err
			if self.fallback_on_error:
				logger.warning("Analysis request failed (%s); returning fallback analysis", err)
				return fallback_analysis(student_name, target)
			raise
		finally:
			self.is_loading = False
			await client.aclose()
		return parse_analysis_response(raw, student_name, target)
