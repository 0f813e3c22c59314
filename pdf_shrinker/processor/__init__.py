"""PDF rewrite services."""

from .base import BaseRewriter
from .factory import RewriterFactory
from .pymupdf_rewriter import PyMuPdfRewriter
from .shrink import PikepdfRewriter, RewriteOptions, shrink_pdf

__all__ = [
    "BaseRewriter",
    "PikepdfRewriter",
    "PyMuPdfRewriter",
    "RewriteOptions",
    "RewriterFactory",
    "shrink_pdf",
]
