from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..iep import IEPData, IEPGoal, IEPService
from ..state import AppState
from .auth import get_app_state

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentSummary(BaseModel):
	id: str
	document_id: str
	student_name: str
	file_name: str
	overall_score: int
	upload_date: datetime
	is_current: bool = False


class DocumentDetail(BaseModel):
	id: str
	document_id: str
	student_name: str
	file_name: str
	upload_date: datetime
	analysis_date: datetime
	notes: str
	overall_score: int
	quality_score: float
	summary: str
	strengths: List[str]
	concerns: List[str]
	recommendations: List[str]
	goals: List[IEPGoal]
	services: List[IEPService]
	# e.g. "1520 words • 4 pages • PDF"
	document_summary: Optional[str] = None
	word_count: Optional[int] = None


def to_detail(iep: IEPData) -> DocumentDetail:
	doc = iep.original_document
	return DocumentDetail(
		**iep.model_dump(exclude={"original_document", "last_modified"}),
		document_summary=doc.summary if doc else None,
		word_count=doc.word_count if doc else None,
	)


@router.get("", response_model=List[DocumentSummary])
async def list_documents(state: AppState = Depends(get_app_state)):
	current_id = state.current_iep.document_id if state.current_iep else None
	return [
		DocumentSummary(
			id=iep.id,
			document_id=iep.document_id,
			student_name=iep.student_name,
			file_name=iep.file_name,
			overall_score=iep.overall_score,
			upload_date=iep.upload_date,
			is_current=iep.document_id == current_id,
		)
		for iep in state.document_history
	]


@router.get("/current", response_model=DocumentDetail)
async def current_document(state: AppState = Depends(get_app_state)):
	if state.current_iep is None:
		raise HTTPException(status_code=404, detail="No document available for analysis")
	return to_detail(state.current_iep)


@router.post("/{document_id}/select", response_model=DocumentDetail)
async def select_document(document_id: str, state: AppState = Depends(get_app_state)):
	iep = state.find_document(document_id)
	if iep is None:
		raise HTTPException(status_code=404, detail="Document not found")
	state.select_document(iep)
	return to_detail(iep)
