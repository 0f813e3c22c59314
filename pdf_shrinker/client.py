"""HTTP upload client with byte-level progress.

Progress is an upload signal only: it reaches 100 once the whole request
body has been handed to the transport. The size summary is computed from the
bytes actually received, never from a response header.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional, Union
from urllib.parse import unquote

import httpx
import typer

from pdf_shrinker.models import CompressionResult, human_bytes

_DEFAULT_BASE_URL = "http://localhost:5000"

_FILENAME_STAR = re.compile(r"filename\*=(?:utf-8|UTF-8)''([^;]+)")
_FILENAME = re.compile(r'filename="?([^";]+)"?')


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    bytes_sent: int
    total_bytes: int
    percentage: int


ProgressObserver = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Turns sent byte counts into a non-decreasing percentage sequence.

    100 is reported exactly once, when ``bytes_sent`` reaches ``total``.
    """

    def __init__(self, total: int, observer: Optional[ProgressObserver] = None) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self.total = total
        self.bytes_sent = 0
        self.percentage = 0
        self._observer = observer
        self._done = False

    def _percent(self) -> int:
        if self.total == 0 or self.bytes_sent >= self.total:
            return 100
        pct = round(self.bytes_sent * 100 / self.total)
        return min(pct, 99)

    def advance(self, n: int) -> Optional[ProgressEvent]:
        if self._done:
            return None
        self.bytes_sent = min(self.total, self.bytes_sent + max(0, n))
        self.percentage = max(self.percentage, self._percent())
        if self.percentage == 100:
            self._done = True
        event = ProgressEvent(self.bytes_sent, self.total, self.percentage)
        if self._observer is not None:
            self._observer(event)
        return event

    @property
    def done(self) -> bool:
        return self._done


class APIError(Exception):
    """Raised when the backend returns a 4xx/5xx response."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"[{status_code}] {detail}")


@dataclass(frozen=True)
class CompressionOutcome:
    content: bytes
    filename: str
    result: CompressionResult

    def summary(self) -> str:
        return self.result.summary()

    def save(self, path: Union[str, Path]) -> Path:
        p = Path(path)
        p.write_bytes(self.content)
        return p


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    m = _FILENAME_STAR.search(header)
    if m:
        return unquote(m.group(1).strip())
    m = _FILENAME.search(header)
    if m:
        return m.group(1).strip()
    return None


class ShrinkerClient:
    """Uploads a PDF to ``POST /compress`` and returns the rewritten document."""

    def __init__(
            self,
            base_url: str = _DEFAULT_BASE_URL,
            timeout: float = 120.0,
            chunk_size: int = 64 * 1024,
            transport: Optional[httpx.BaseTransport] = None,
            http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.chunk_size = max(1, chunk_size)
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ShrinkerClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        raise APIError(resp.status_code, resp.text.strip() or resp.reason_phrase)

    def _chunks(self, body: bytes, tracker: ProgressTracker) -> Iterator[bytes]:
        view = memoryview(body)
        for start in range(0, len(body), self.chunk_size):
            chunk = bytes(view[start:start + self.chunk_size])
            yield chunk
            # Resumed only after the transport consumed the chunk.
            tracker.advance(len(chunk))
        if not tracker.done:
            tracker.advance(0)

    # ------------------------------------------------------------------
    # Compress
    # ------------------------------------------------------------------

    def compress(
            self,
            document: Union[str, Path, bytes],
            filename: Optional[str] = None,
            on_progress: Optional[ProgressObserver] = None,
    ) -> CompressionOutcome:
        if isinstance(document, (str, Path)):
            path = Path(document)
            data = path.read_bytes()
            filename = filename or path.name
        else:
            data = bytes(document)
            filename = filename or "document.pdf"

        encoded = self._client.build_request(
            "POST",
            "/compress",
            files={"pdf": (filename, data, "application/pdf")},
        )
        body = encoded.read()
        tracker = ProgressTracker(len(body), on_progress)

        resp = self._client.post(
            "/compress",
            content=self._chunks(body, tracker),
            headers={
                "Content-Type": encoded.headers["Content-Type"],
                "Content-Length": str(len(body)),
            },
        )
        self._raise_for_status(resp)

        content = resp.content
        name = filename_from_disposition(resp.headers.get("content-disposition"))
        return CompressionOutcome(
            content=content,
            filename=name or f"compressed_{filename}",
            result=CompressionResult.from_sizes(len(data), len(content)),
        )


cli = typer.Typer(no_args_is_help=True, add_completion=False)


@cli.command()
def compress(
        file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
        url: str = typer.Option(_DEFAULT_BASE_URL, "--url", help="Server base URL."),
        out: Optional[Path] = typer.Option(None, "--out", help="Where to write the result."),
):
    """
    Upload a PDF, show upload progress and write the compressed copy.
    """
    last = -1

    def show(event: ProgressEvent) -> None:
        nonlocal last
        if event.percentage != last:
            last = event.percentage
            typer.echo(f"\rUploading... {event.percentage:3d}%", nl=False)

    if file.stat().st_size == 0:
        typer.echo("Refusing to upload an empty file.", err=True)
        raise typer.Exit(code=2)

    with ShrinkerClient(base_url=url) as client:
        try:
            outcome = client.compress(file, on_progress=show)
        except (APIError, httpx.HTTPError) as e:
            typer.echo("")
            typer.echo(f"Error compressing PDF. Please try again. ({e})", err=True)
            raise typer.Exit(code=1)

    typer.echo("")
    target = out or file.with_name(outcome.filename)
    outcome.save(target)
    typer.echo(outcome.summary())
    typer.echo(f"Saved to {target} ({human_bytes(len(outcome.content))})")


if __name__ == "__main__":
    cli()
