"""Per-request ingest pipeline: receive -> materialize -> rewrite -> deliver."""

from __future__ import annotations

import asyncio
from typing import Dict, FrozenSet, Optional

from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response

from pdf_shrinker.exceptions import (
    BadRequestError,
    DocumentTooLargeError,
    MalformedDocumentError,
    TransportError,
)
from pdf_shrinker.logging_setup import bind_request_id, request_logger, unbind_request_id
from pdf_shrinker.models import CompressionResult, DeliveryOutcome, PipelineState, UploadRequest, human_bytes
from pdf_shrinker.processor import BaseRewriter
from pdf_shrinker.storage import INCOMING, OUTGOING, ArtifactScope, TransientStore, new_request_id
from pdf_shrinker.web.delivery import DeliveryResponder

UPLOAD_FIELD = "pdf"
# Room for multipart boundaries and part headers on top of the document itself.
MULTIPART_OVERHEAD = 64 * 1024

_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.RECEIVED: frozenset({PipelineState.MATERIALIZING, PipelineState.FAILED}),
    PipelineState.MATERIALIZING: frozenset({PipelineState.REWRITING, PipelineState.FAILED}),
    PipelineState.REWRITING: frozenset({PipelineState.DELIVERING, PipelineState.FAILED}),
    PipelineState.DELIVERING: frozenset({PipelineState.COMPLETED, PipelineState.FAILED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise BadRequestError("Invalid Content-Length header")
    if value < 0:
        raise BadRequestError("Invalid Content-Length header")
    return value


class IngestPipeline:
    """
    Handles exactly one upload.

    Every artifact the pipeline materializes belongs to its request scope.
    The scope is closed on every exit path: right away when a stage fails,
    or by the delivery response once the download has finished or the
    client went away.
    """

    def __init__(
            self,
            store: TransientStore,
            rewriter: BaseRewriter,
            responder: DeliveryResponder,
            *,
            max_document_size: int,
            request_id: Optional[str] = None,
    ) -> None:
        self.store = store
        self.rewriter = rewriter
        self.responder = responder
        self.max_document_size = max_document_size
        self.request_id = request_id or new_request_id()

        self.state = PipelineState.RECEIVED
        self.result: Optional[CompressionResult] = None
        self.error: Optional[BaseException] = None
        self.delivery: Optional[DeliveryOutcome] = None

        self.log = request_logger("pdf_shrinker.pipeline", self.request_id)
        self._scope = store.scope(self.request_id)

    @property
    def scope(self) -> ArtifactScope:
        return self._scope

    def _advance(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {new_state.value}")
        self.log.debug("State %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    # ----------------------------
    # Stages
    # ----------------------------

    async def receive(self, request: Request) -> UploadRequest:
        """Decode the multipart body into an UploadRequest."""
        declared = _declared_length(request)
        if declared is not None and declared > self.max_document_size + MULTIPART_OVERHEAD:
            raise DocumentTooLargeError(
                f"Document is too large (limit {human_bytes(self.max_document_size)})"
            )

        try:
            form = await request.form(max_files=1, max_fields=16)
        except ClientDisconnect as e:
            raise TransportError("Client disconnected during upload") from e
        except (MultiPartException, HTTPException) as e:
            detail = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
            raise BadRequestError(f"Malformed multipart body: {detail}") from e

        try:
            upload = form.get(UPLOAD_FIELD)
            if upload is None:
                raise BadRequestError(f"Missing '{UPLOAD_FIELD}' file field")
            if not isinstance(upload, UploadFile):
                raise BadRequestError(f"Field '{UPLOAD_FIELD}' must be a file")

            payload = await upload.read(self.max_document_size + 1)
            if len(payload) > self.max_document_size:
                raise DocumentTooLargeError(
                    f"Document is too large (limit {human_bytes(self.max_document_size)})"
                )
            if not payload:
                raise MalformedDocumentError("Empty document")

            return UploadRequest(
                original_filename=upload.filename or "document.pdf",
                payload=payload,
                declared_length=declared,
            )
        finally:
            await form.close()

    async def run(self, request: Request) -> Response:
        """Run all stages and return the streaming download response."""
        response: Optional[Response] = None
        token = bind_request_id(self.request_id)
        try:
            upload = await self.receive(request)
            self.log.info("Incoming file: name=%s size=%s bytes", upload.original_filename, upload.size)

            self._advance(PipelineState.MATERIALIZING)
            original = await asyncio.to_thread(self._scope.materialize, upload.payload, kind=INCOMING)

            self._advance(PipelineState.REWRITING)
            rewritten = await asyncio.to_thread(self.rewriter.transform, upload.payload)

            self._advance(PipelineState.DELIVERING)
            output = await asyncio.to_thread(
                self._scope.materialize,
                rewritten,
                kind=OUTGOING,
                filename=upload.original_filename,
            )
            self.result = CompressionResult.from_sizes(original.size, output.size)
            self.log.info(
                "Rewritten with %s: %s -> %s (%.2f%%)",
                self.rewriter.name,
                human_bytes(self.result.original_size),
                human_bytes(self.result.compressed_size),
                self.result.reduction,
            )

            headers = self.result.as_headers()
            headers["X-Request-ID"] = self.request_id
            response = self.responder.stream(
                output,
                upload.original_filename,
                on_close=self._on_delivered,
                headers=headers,
                logger=self.log,
            )
            return response
        except Exception as e:
            self._fail(e)
            raise
        finally:
            if response is None:
                if not self.state.terminal:
                    self.state = PipelineState.FAILED
                self._scope.close()
            unbind_request_id(token)

    # ----------------------------
    # Terminal states
    # ----------------------------

    def _fail(self, error: BaseException) -> None:
        self.error = error
        if not self.state.terminal:
            stage = self.state.value
            self._advance(PipelineState.FAILED)
        else:
            stage = "-"

        if isinstance(error, TransportError):
            self.log.debug("Aborted at %s: %s", stage, error.message)
        elif isinstance(error, (BadRequestError, MalformedDocumentError)):
            self.log.warning("Rejected at %s: %s", stage, error.message)
        else:
            self.log.exception("Failed at %s: %s", stage, error)

    def _on_delivered(self, outcome: DeliveryOutcome) -> None:
        self.delivery = outcome
        self._scope.close()
        if outcome is DeliveryOutcome.SENT:
            self._advance(PipelineState.COMPLETED)
            self.log.info("Delivered")
        else:
            self._advance(PipelineState.FAILED)
            if outcome is DeliveryOutcome.DISCONNECTED:
                self.log.debug("Client disconnected before the download finished")
            else:
                self.log.warning("Delivery failed")
