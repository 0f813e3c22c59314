"""Compress router."""

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from pdf_shrinker.pipeline import IngestPipeline

router = APIRouter(tags=["compress"])


def get_pipeline(request: Request) -> IngestPipeline:
    """One pipeline per request; nothing is shared except the store."""
    state = request.app.state
    return IngestPipeline(
        state.store,
        state.rewriter,
        state.responder,
        max_document_size=state.settings.max_document_size,
    )


@router.post("/compress", response_class=Response)
async def compress(request: Request, pipeline: IngestPipeline = Depends(get_pipeline)) -> Response:
    """Rewrite the uploaded ``pdf`` field and stream it back as an attachment."""
    return await pipeline.run(request)
