from __future__ import annotations
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from ..documents import SUPPORTED_EXTENSIONS, FileTooLargeError
from ..settings import settings
from ..state import AppState, Screen, UploadStatus
from .auth import get_app_state
from .documents import DocumentDetail, to_detail

router = APIRouter(prefix="/upload", tags=["upload"])

logger = logging.getLogger(__name__)


class UploadStatusResponse(BaseModel):
	session_id: Optional[str] = None
	status: Optional[UploadStatus] = None
	status_text: str
	progress: float
	show_progress: bool = False
	error_message: Optional[str] = None
	can_start_upload: bool
	supported_extensions: list[str] = SUPPORTED_EXTENSIONS


def upload_status(state: AppState) -> UploadStatusResponse:
	session = state.upload_session
	return UploadStatusResponse(
		session_id=session.id if session else None,
		status=session.status if session else None,
		status_text=state.upload_status_text,
		progress=state.upload_progress,
		show_progress=session.status.show_progress if session else False,
		error_message=session.error_message if session else None,
		can_start_upload=state.can_start_upload,
	)


@router.get("/status", response_model=UploadStatusResponse)
async def get_status(state: AppState = Depends(get_app_state)):
	return upload_status(state)


@router.post("/start", response_model=UploadStatusResponse, status_code=201)
async def start(state: AppState = Depends(get_app_state)):
	state.navigate(Screen.UPLOAD)
	if not state.start_upload_session():
		raise HTTPException(status_code=409, detail=state.error_message)
	return upload_status(state)


@router.post("/select", response_model=UploadStatusResponse)
async def select_file(state: AppState = Depends(get_app_state)):
	if not state.select_file():
		raise HTTPException(status_code=404, detail=state.error_message)
	return upload_status(state)


UPLOAD_CHUNK_SIZE = 1024 * 1024


async def _save_upload(file: UploadFile, suffix: str) -> str:
	"""Spool the request body to a temp file, stopping at the size limit."""
	written = 0
	with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as temp_file:
		temp_path = temp_file.name
		while True:
			chunk = await file.read(UPLOAD_CHUNK_SIZE)
			if not chunk:
				break
			written += len(chunk)
			if written > settings.max_file_size_bytes:
				break
			temp_file.write(chunk)
	if written > settings.max_file_size_bytes:
		os.unlink(temp_path)
		logger.info("Rejected upload %s over %d bytes", file.filename, settings.max_file_size_bytes)
		raise HTTPException(status_code=413, detail=FileTooLargeError.message)
	return temp_path


@router.post("/document", response_model=DocumentDetail)
async def upload_document(file: UploadFile = File(...), state: AppState = Depends(get_app_state)):
	session = state.upload_session
	if session is None:
		raise HTTPException(status_code=404, detail="No active upload session")
	if session.status.show_progress:
		raise HTTPException(status_code=409, detail="A document is already being processed")
	if session.status is UploadStatus.COMPLETED:
		raise HTTPException(status_code=409, detail="This upload session is already complete")

	file_name = Path(file.filename or "document").name
	if file.size is not None and file.size > settings.max_file_size_bytes:
		raise HTTPException(status_code=413, detail=FileTooLargeError.message)
	temp_path = await _save_upload(file, Path(file_name).suffix)
	try:
		iep = await state.process_selected_document(Path(temp_path), file_name)
	finally:
		os.unlink(temp_path)
	if iep is None and state.upload_session is not session:
		raise HTTPException(status_code=409, detail="The upload was cancelled")
	if iep is None:
		raise HTTPException(status_code=422, detail=state.error_message)
	return to_detail(iep)


@router.post("/complete", response_model=UploadStatusResponse)
async def complete(state: AppState = Depends(get_app_state)):
	state.complete_upload()
	return upload_status(state)


@router.delete("", response_model=UploadStatusResponse)
async def cancel(state: AppState = Depends(get_app_state)):
	state.cancel_upload()
	return upload_status(state)
