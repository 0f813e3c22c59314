from __future__ import annotations

from abc import ABC, abstractmethod

PDF_MAGIC = b"%PDF-"


def looks_like_pdf(data: bytes) -> bool:
    """PDF readers accept the header anywhere in the first 1024 bytes."""
    return PDF_MAGIC in data[:1024]


class BaseRewriter(ABC):
    """Contract for all PDF rewrite adapters."""

    name: str = "base"

    @abstractmethod
    def transform(self, document_bytes: bytes) -> bytes:
        """Reload a PDF and serialize it again as a full rewrite.

        Args:
            document_bytes: Raw PDF file content. Never modified.

        Returns:
            The rewritten document.

        Raises:
            MalformedDocumentError: if the input is empty or cannot be parsed.
        """
