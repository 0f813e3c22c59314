from __future__ import annotations

from typing import Callable, Dict

from pdf_shrinker.processor.base import BaseRewriter
from pdf_shrinker.processor.pymupdf_rewriter import PyMuPdfRewriter
from pdf_shrinker.processor.shrink import PikepdfRewriter, RewriteOptions
from pdf_shrinker.settings import Settings


def _pikepdf(settings: Settings) -> BaseRewriter:
    return PikepdfRewriter(
        RewriteOptions(
            object_streams=settings.object_streams,
            linearize=settings.linearize,
        )
    )


def _pymupdf(settings: Settings) -> BaseRewriter:
    return PyMuPdfRewriter()


class RewriterFactory:
    """Creates the configured PDF rewriter."""

    ENGINES: Dict[str, Callable[[Settings], BaseRewriter]] = {
        "pikepdf": _pikepdf,
        "pymupdf": _pymupdf,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseRewriter:
        engine = settings.rewrite_engine.lower()
        build = cls.ENGINES.get(engine)
        if build is None:
            raise ValueError(
                f"Unknown rewrite engine '{engine}'. Choose from: {list(cls.ENGINES)}"
            )
        return build(settings)
