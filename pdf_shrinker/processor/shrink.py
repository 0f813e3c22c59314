"""PDF rewrite utilities (pikepdf / qpdf)."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pikepdf

from pdf_shrinker.exceptions import MalformedDocumentError
from pdf_shrinker.processor.base import BaseRewriter, looks_like_pdf

_OBJECT_STREAM_MODES = {
    "disable": pikepdf.ObjectStreamMode.disable,
    "preserve": pikepdf.ObjectStreamMode.preserve,
    "generate": pikepdf.ObjectStreamMode.generate,
}


@dataclass(frozen=True, slots=True)
class RewriteOptions:
    """Save options for a full (non-incremental) rewrite."""
    object_streams: str = "disable"
    linearize: bool = True
    compress_streams: bool = True

    def object_stream_mode(self) -> pikepdf.ObjectStreamMode:
        mode = _OBJECT_STREAM_MODES.get(self.object_streams.lower())
        if mode is None:
            raise ValueError(
                f"Unknown object stream mode '{self.object_streams}'. "
                f"Choose from: {list(_OBJECT_STREAM_MODES)}"
            )
        return mode


class PikepdfRewriter(BaseRewriter):
    """Rewrite a PDF using pikepdf.

    This step does not change PDF semantics; it reduces size by:
    - dropping unreferenced objects and stale incremental updates
    - compressing streams
    - writing a single linearized cross-reference section
    """

    name = "pikepdf"

    def __init__(self, options: Optional[RewriteOptions] = None) -> None:
        self.options = options or RewriteOptions()
        self._mode = self.options.object_stream_mode()

    def transform(self, document_bytes: bytes) -> bytes:
        if not document_bytes:
            raise MalformedDocumentError("Empty document")
        if not looks_like_pdf(document_bytes):
            raise MalformedDocumentError("Not a PDF document")

        out = io.BytesIO()
        try:
            with pikepdf.Pdf.open(io.BytesIO(document_bytes)) as pdf:
                pdf.save(
                    out,
                    linearize=self.options.linearize,
                    compress_streams=self.options.compress_streams,
                    object_stream_mode=self._mode,
                )
        except pikepdf.PasswordError as e:
            raise MalformedDocumentError(f"Encrypted PDF: {e}") from e
        except pikepdf.PdfError as e:
            raise MalformedDocumentError(f"Cannot parse PDF: {e}") from e
        return out.getvalue()


def shrink_pdf(
        input_path: str | Path,
        output_path: str | Path,
        options: Optional[RewriteOptions] = None,
) -> None:
    """Rewrite a PDF file into ``output_path``.

    Parameters
    ----------
    input_path:
        Source PDF.
    output_path:
        Destination PDF.
    options:
        Save options; a linearized rewrite without object streams by default.
    """
    data = Path(input_path).read_bytes()
    Path(output_path).write_bytes(PikepdfRewriter(options).transform(data))
