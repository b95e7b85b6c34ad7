"""
Document text extraction for uploaded IEP/504 plans.

Accepts PDF, DOCX, RTF and plain-text files (legacy DOC only when it is
really RTF underneath), validates size and content, and returns a
ProcessedDocument with the cleaned text. Progress is tracked on the
processor so the upload pipeline can report it while extraction runs.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import PyPDF2
import docx
from pydantic import BaseModel, Field
from striprtf.striprtf import rtf_to_text

from .settings import settings

logger = logging.getLogger(__name__)


class DocumentProcessingError(Exception):
	message = "Failed to extract text from the document. Please try a different file."

	def __init__(self, message: Optional[str] = None) -> None:
		super().__init__(message or self.message)


class UnsupportedFileTypeError(DocumentProcessingError):
	message = "This file type is not supported. Please select a PDF, DOC, DOCX, RTF, or TXT file."


class FileTooLargeError(DocumentProcessingError):
	message = "File is too large. Please select a file smaller than 10MB."


class DocumentNotFoundError(DocumentProcessingError):
	message = "The selected file could not be found."


class EmptyDocumentError(DocumentProcessingError):
	message = "The document appears to be empty or contains no readable text."


class CorruptedFileError(DocumentProcessingError):
	message = "The file appears to be corrupted and cannot be read."


class ExtractionFailedError(DocumentProcessingError):
	pass


class PermissionDeniedError(DocumentProcessingError):
	message = "Permission denied. Please ensure the file is accessible."


class DocumentType(str, Enum):
	PDF = "pdf"
	DOCX = "docx"
	DOC = "doc"
	TXT = "txt"
	RTF = "rtf"

	@property
	def display_name(self) -> str:
		return {
			DocumentType.PDF: "PDF",
			DocumentType.DOCX: "Word Document",
			DocumentType.DOC: "Word Document (Legacy)",
			DocumentType.TXT: "Text File",
			DocumentType.RTF: "Rich Text",
		}[self]

	@classmethod
	def from_extension(cls, extension: str) -> "DocumentType":
		ext = (extension or "").lower().lstrip(".")
		for member in cls:
			if member.value == ext:
				return member
		raise UnsupportedFileTypeError()


SUPPORTED_EXTENSIONS: List[str] = [t.value for t in DocumentType]


class ProcessedDocument(BaseModel):
	original_file_name: str
	file_size: int
	page_count: Optional[int] = None
	extracted_text: str
	word_count: int
	processing_date: datetime = Field(default_factory=datetime.utcnow)
	file_type: DocumentType

	@property
	def summary(self) -> str:
		parts = [f"{self.word_count} words"]
		if self.page_count is not None:
			parts.append(f"{self.page_count} pages")
		parts.append(self.file_type.display_name)
		return " • ".join(parts)


def clean_text(text: str, max_word_count: int) -> str:
	"""Trim, reject empty text, cap the word count and normalize whitespace.

	Over-long text is cut to the first ``max_word_count`` words joined by
	single spaces.
	"""
	trimmed = (text or "").strip()
	if not trimmed:
		raise EmptyDocumentError()
	words = trimmed.split()
	if len(words) > max_word_count:
		return " ".join(words[:max_word_count])
	cleaned = trimmed.replace("\r\n", "\n").replace("\r", "\n")
	cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
	cleaned = re.sub(r" {2,}", " ", cleaned)
	return cleaned


class DocumentProcessor:
	def __init__(self, *, max_file_size: Optional[int] = None, max_word_count: Optional[int] = None) -> None:
		self.max_file_size = max_file_size or settings.max_file_size_bytes
		self.max_word_count = max_word_count or settings.max_word_count
		self.is_processing = False
		self.processing_progress = 0.0
		self.last_error: Optional[DocumentProcessingError] = None
		self.current_document: Optional[ProcessedDocument] = None

	async def process(self, path: Path, original_file_name: Optional[str] = None) -> ProcessedDocument:
		path = Path(path)
		file_name = original_file_name or path.name
		self.is_processing = True
		self.processing_progress = 0.0
		self.last_error = None
		try:
			self.processing_progress = 0.1
			self._validate_access(path)

			self.processing_progress = 0.2
			file_type = DocumentType.from_extension(Path(file_name).suffix)
			file_size = self._validate_size(path)

			self.processing_progress = 0.3
			text, page_count = await asyncio.to_thread(self._extract_text, path, file_type)

			self.processing_progress = 0.7
			cleaned = clean_text(text, self.max_word_count)

			self.processing_progress = 0.9
			document = ProcessedDocument(
				original_file_name=file_name,
				file_size=file_size,
				page_count=page_count,
				extracted_text=cleaned,
				word_count=len(cleaned.split()),
				file_type=file_type,
			)
			self.processing_progress = 1.0
			self.current_document = document
			logger.info("Document processed: %s (%s)", file_name, document.summary)
			return document
		except DocumentProcessingError as err:
			self.last_error = err
			logger.warning("Document processing failed for %s: %s", file_name, err)
			raise
		except Exception as err:
			self.last_error = ExtractionFailedError()
			logger.exception("Unexpected error processing %s", file_name)
			raise self.last_error from err
		finally:
			self.is_processing = False
			self.processing_progress = 0.0

	def _validate_access(self, path: Path) -> None:
		if not path.exists():
			raise DocumentNotFoundError()
		if not os.access(path, os.R_OK):
			raise PermissionDeniedError()

	def _validate_size(self, path: Path) -> int:
		try:
			size = path.stat().st_size
		except OSError as err:
			raise DocumentNotFoundError() from err
		if size > self.max_file_size:
			raise FileTooLargeError()
		return size

	def _extract_text(self, path: Path, file_type: DocumentType) -> Tuple[str, Optional[int]]:
		if file_type is DocumentType.PDF:
			return self._extract_pdf(path)
		if file_type is DocumentType.TXT:
			return self._extract_txt(path), None
		if file_type is DocumentType.RTF:
			return self._extract_rtf(path), None
		if file_type is DocumentType.DOCX:
			return self._extract_docx(path), None
		return self._extract_legacy_doc(path), None

	def _extract_pdf(self, path: Path) -> Tuple[str, int]:
		with open(path, "rb") as file:
			try:
				reader = PyPDF2.PdfReader(file)
				total_pages = len(reader.pages)
			except Exception as err:
				raise CorruptedFileError() from err
			if total_pages == 0:
				raise EmptyDocumentError()
			pages: List[str] = []
			for page_num in range(total_pages):
				page_text = reader.pages[page_num].extract_text()
				if page_text:
					pages.append(page_text)
				self.processing_progress = 0.3 + ((page_num + 1) / total_pages) * 0.4
		return "\n\n".join(pages).strip(), total_pages

	def _extract_txt(self, path: Path) -> str:
		for encoding in ("utf-8", "cp1252"):
			try:
				return path.read_text(encoding=encoding).strip()
			except UnicodeDecodeError:
				continue
		raise ExtractionFailedError()

	def _extract_rtf(self, path: Path) -> str:
		try:
			raw = path.read_text(encoding="utf-8", errors="ignore")
			return rtf_to_text(raw).strip()
		except Exception as err:
			raise ExtractionFailedError() from err

	def _extract_docx(self, path: Path) -> str:
		try:
			document = docx.Document(str(path))
		except Exception as err:
			raise CorruptedFileError() from err
		lines = [p.text for p in document.paragraphs if p.text.strip()]
		# Goals and service grids in IEPs usually live in tables
		for table in document.tables:
			for row in table.rows:
				cells = [c.text.strip() for c in row.cells if c.text.strip()]
				if cells:
					lines.append(" | ".join(cells))
		return "\n".join(lines).strip()

	def _extract_legacy_doc(self, path: Path) -> str:
		# Binary .doc is not readable; only RTF saved with a .doc extension is
		with open(path, "rb") as file:
			head = file.read(5)
		if head != b"{\\rtf":
			raise UnsupportedFileTypeError()
		return self._extract_rtf(path)
