from __future__ import annotations
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .documents import ProcessedDocument


class UserRole(str, Enum):
	PARENT = "parent"
	TEACHER = "teacher"
	COUNSELOR = "counselor"

	@property
	def display_name(self) -> str:
		return self.value.capitalize()


class GoalStatus(str, Enum):
	ON_TRACK = "On Track"
	NEEDS_ATTENTION = "Needs Attention"
	BEHIND = "Behind"


class IEPGoal(BaseModel):
	area: str
	goal: str
	status: GoalStatus = GoalStatus.ON_TRACK
	progress: int = 50


class IEPService(BaseModel):
	service: str
	frequency: str
	provider: str


class IEPData(BaseModel):
	id: str = Field(default_factory=lambda: uuid.uuid4().hex)
	document_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
	student_name: str
	file_name: str
	upload_date: datetime = Field(default_factory=datetime.utcnow)
	last_modified: datetime = Field(default_factory=datetime.utcnow)
	notes: str = ""
	overall_score: int
	quality_score: float = 0.85
	summary: str
	strengths: List[str] = Field(default_factory=list)
	concerns: List[str] = Field(default_factory=list)
	recommendations: List[str] = Field(default_factory=list)
	goals: List[IEPGoal] = Field(default_factory=list)
	services: List[IEPService] = Field(default_factory=list)
	original_document: Optional[ProcessedDocument] = None
	analysis_date: datetime = Field(default_factory=datetime.utcnow)


class DocumentAnalysis(BaseModel):
	student_name: str
	summary: str
	overall_score: int
	strengths: List[str]
	concerns: List[str]
	recommendations: List[str]
	goals: List[IEPGoal]
	services: List[IEPService]

	def to_iep_data(self, file_name: str, original_document: ProcessedDocument) -> IEPData:
		return IEPData(
			student_name=self.student_name,
			file_name=file_name,
			notes="Analyzed with AI assistance",
			overall_score=self.overall_score,
			summary=self.summary,
			strengths=list(self.strengths),
			concerns=list(self.concerns),
			recommendations=list(self.recommendations),
			goals=list(self.goals),
			services=list(self.services),
			original_document=original_document,
		)


_NAME = r"([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*)"
_NAME_PATTERNS = [
	r"Student:?\s*" + _NAME,
	r"Name:?\s*" + _NAME,
	r"Child:?\s*" + _NAME,
]


def extract_student_name(text: str, file_name: str) -> str:
	"""Pull the student's name from the document, then the file name.

	Labels ("Student:", "Name:", "Child:") are tried in order; a match must be
	2-49 characters. Otherwise the first capitalized file-name word longer than
	two characters is used, and finally the literal "Student".
	"""
	for pattern in _NAME_PATTERNS:
		for match in re.finditer(pattern, text or ""):
			# "Student Name: ..." captures the next label, not a name
			if text[match.end():match.end() + 1] == ":":
				continue
			name = match.group(1).strip()
			if 1 < len(name) < 50:
				return name
			break
	clean_file_name = (file_name or "").replace("_", " ").replace("-", " ")
	for component in clean_file_name.split(" "):
		if len(component) > 2 and component[0].isupper():
			return component
	return "Student"
