"""Streaming delivery of a rewritten artifact as a file attachment."""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Dict, Iterator, Mapping, Optional
from urllib.parse import quote

import anyio
from starlette.concurrency import iterate_in_threadpool
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from pdf_shrinker.exceptions import StorageError
from pdf_shrinker.models import DeliveryOutcome
from pdf_shrinker.storage import ArtifactHandle, TransientStore, sanitize_filename

OUTPUT_PREFIX = "compressed_"

OnClose = Callable[[DeliveryOutcome], None]


def attachment_filename(original_filename: Optional[str]) -> str:
    return f"{OUTPUT_PREFIX}{sanitize_filename(original_filename, allow_unicode=True)}"


def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


class ArtifactResponse(Response):
    """
    Streams one artifact and reports how the transfer ended.

    ``on_close`` is called exactly once, after the last chunk was sent, the
    client went away, or the artifact could not be read.
    """

    media_type = "application/pdf"

    def __init__(
            self,
            store: TransientStore,
            artifact: ArtifactHandle,
            filename: str,
            *,
            on_close: OnClose,
            chunk_size: int = 64 * 1024,
            headers: Optional[Mapping[str, str]] = None,
            logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.store = store
        self.artifact = artifact
        self.filename = filename
        self.chunk_size = chunk_size
        self.outcome: Optional[DeliveryOutcome] = None
        self.log = logger or logging.LoggerAdapter(
            logging.getLogger("pdf_shrinker.web.delivery"), {"request_id": artifact.request_id}
        )
        self._on_close = on_close
        self._closed = False

        all_headers: Dict[str, str] = dict(headers or {})
        all_headers["content-disposition"] = content_disposition(filename)
        all_headers["content-length"] = str(artifact.size)

        self.status_code = 200
        self.background = None
        self.init_headers(all_headers)

    async def _listen_for_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                if self.outcome is None:
                    self.outcome = DeliveryOutcome.DISCONNECTED
                break

    async def _stream(self, chunks: Iterator[bytes], send: Send) -> None:
        try:
            await send(
                {
                    "type": "http.response.start",
                    "status": self.status_code,
                    "headers": self.raw_headers,
                }
            )
            async for chunk in iterate_in_threadpool(chunks):
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except (OSError, ClientDisconnect) as e:
            self.outcome = DeliveryOutcome.DISCONNECTED
            self.log.debug("Client disconnected during delivery: %r", e)
        except StorageError as e:
            self.outcome = DeliveryOutcome.FAILED
            self.log.error("Delivery aborted: %s", e.message)
        else:
            if self.outcome is None:
                self.outcome = DeliveryOutcome.SENT

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        chunks = self.store.iter_chunks(self.artifact, self.chunk_size)
        try:
            async with anyio.create_task_group() as task_group:

                async def wrap(func: Callable[[], object]) -> None:
                    await func()
                    task_group.cancel_scope.cancel()

                task_group.start_soon(wrap, partial(self._stream, chunks, send))
                await wrap(partial(self._listen_for_disconnect, receive))
        finally:
            chunks.close()
            self._finish()

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.outcome is None:
            self.outcome = DeliveryOutcome.FAILED
        self._on_close(self.outcome)


class DeliveryResponder:
    """Builds attachment responses for rewritten artifacts."""

    def __init__(self, store: TransientStore, chunk_size: int = 64 * 1024) -> None:
        self.store = store
        self.chunk_size = chunk_size

    def stream(
            self,
            artifact: ArtifactHandle,
            suggested_filename: Optional[str],
            *,
            on_close: OnClose,
            headers: Optional[Mapping[str, str]] = None,
            logger: Optional[logging.LoggerAdapter] = None,
    ) -> ArtifactResponse:
        return ArtifactResponse(
            self.store,
            artifact,
            attachment_filename(suggested_filename),
            on_close=on_close,
            chunk_size=self.chunk_size,
            headers=headers,
            logger=logger,
        )
