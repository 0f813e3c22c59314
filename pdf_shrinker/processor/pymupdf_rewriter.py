from __future__ import annotations

import fitz  # PyMuPDF

from pdf_shrinker.exceptions import MalformedDocumentError
from pdf_shrinker.processor.base import BaseRewriter, looks_like_pdf


class PyMuPdfRewriter(BaseRewriter):
    """Rewrite a PDF using PyMuPDF garbage collection and deflate."""

    name = "pymupdf"

    def __init__(self, garbage: int = 3) -> None:
        self.garbage = garbage

    def transform(self, document_bytes: bytes) -> bytes:
        if not document_bytes:
            raise MalformedDocumentError("Empty document")
        if not looks_like_pdf(document_bytes):
            raise MalformedDocumentError("Not a PDF document")

        try:
            doc = fitz.open(stream=bytes(document_bytes), filetype="pdf")
        except Exception as exc:
            raise MalformedDocumentError(f"Cannot parse PDF: {exc}") from exc

        try:
            if doc.needs_pass:
                raise MalformedDocumentError("Encrypted PDF")
            return doc.tobytes(garbage=self.garbage, deflate=True, clean=True)
        except MalformedDocumentError:
            raise
        except Exception as exc:
            raise MalformedDocumentError(f"Cannot rewrite PDF: {exc}") from exc
        finally:
            doc.close()
