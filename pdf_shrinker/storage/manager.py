from __future__ import annotations

import logging
import re
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional

from pdf_shrinker.exceptions import StorageError

INCOMING = "incoming"
OUTGOING = "outgoing"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")
_UNSAFE_UNICODE_CHARS = re.compile(r"[^\w. -]+")
_MAX_FILENAME_LEN = 128


def new_request_id() -> str:
    return uuid.uuid4().hex


def sanitize_filename(
        name: Optional[str],
        default: str = "document.pdf",
        allow_unicode: bool = False,
) -> str:
    """Reduce a caller-supplied filename to a safe single path component.

    "../../etc/passwd.pdf" -> "passwd.pdf"

    Storage paths stay ASCII. With ``allow_unicode`` letters and digits of any
    script are kept, for names shown back to the caller.
    """
    s = (name or "").replace("\\", "/")
    s = s.split("/")[-1]
    s = "".join(ch for ch in s if ch.isprintable())
    unsafe = _UNSAFE_UNICODE_CHARS if allow_unicode else _UNSAFE_CHARS
    s = unsafe.sub("_", s)
    s = re.sub(r"\s+", " ", s).strip()
    s = s.lstrip(".").strip()
    if not s or s in {".", ".."}:
        return default

    if not s.lower().endswith(".pdf"):
        s = f"{s}.pdf"

    if len(s) > _MAX_FILENAME_LEN:
        stem, suffix = s[:-4], s[-4:]
        s = stem[: _MAX_FILENAME_LEN - len(suffix)] + suffix
    return s


@dataclass(frozen=True)
class StorageConfig:
    incoming_dir: Path
    outgoing_dir: Path


@dataclass(frozen=True)
class ArtifactHandle:
    key: str
    path: Path
    size: int
    request_id: str
    kind: str


class TransientStore:
    """
    Request-scoped file storage for uploaded and rewritten PDFs.

    Layout:
      {incoming_dir}/{request_id}_incoming.pdf
      {outgoing_dir}/{request_id}_outgoing_{safe filename}

    Every artifact belongs to exactly one request and is released when that
    request terminates. ``purge`` only removes residue left by a crashed
    process.
    """

    def __init__(self, cfg: StorageConfig, logger: Optional[logging.Logger] = None):
        self.cfg = cfg
        self.log = logger or logging.getLogger("pdf_shrinker.storage")
        self._lock = threading.Lock()
        self._live: Dict[str, ArtifactHandle] = {}
        try:
            self.cfg.incoming_dir.mkdir(parents=True, exist_ok=True)
            self.cfg.outgoing_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directories: {e}") from e

    # ----------------------------
    # Paths
    # ----------------------------

    def root_for(self, kind: str) -> Path:
        if kind == INCOMING:
            return self.cfg.incoming_dir
        if kind == OUTGOING:
            return self.cfg.outgoing_dir
        raise ValueError(f"Unknown artifact kind '{kind}'")

    def _artifact_path(self, request_id: str, kind: str, filename: Optional[str]) -> Path:
        root = self.root_for(kind)
        if not re.fullmatch(r"[A-Za-z0-9_-]+", request_id or ""):
            raise StorageError(f"Invalid request id '{request_id}'")

        name = f"{request_id}_{kind}"
        if filename:
            name = f"{name}_{sanitize_filename(filename)}"
        else:
            name = f"{name}.pdf"

        p = root / name
        rp = p.resolve()
        rr = root.resolve()
        if rr not in rp.parents:
            raise StorageError("Unsafe artifact path")
        return p

    # ----------------------------
    # Artifacts
    # ----------------------------

    def materialize(
            self,
            data: bytes,
            *,
            request_id: str,
            kind: str,
            filename: Optional[str] = None,
    ) -> ArtifactHandle:
        """Write ``data`` to a request-unique location and return its handle."""
        path = self._artifact_path(request_id, kind, filename)
        tmp = path.with_name(path.name + ".tmp")
        try:
            with tmp.open("wb") as f:
                f.write(data)
            tmp.replace(path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StorageError(f"Cannot write {kind} artifact: {e}") from e

        handle = ArtifactHandle(
            key=path.name,
            path=path,
            size=len(data),
            request_id=request_id,
            kind=kind,
        )
        with self._lock:
            self._live[handle.key] = handle
        self.log.debug("Materialized %s (%s bytes)", handle.key, handle.size,
                       extra={"request_id": request_id})
        return handle

    def read(self, handle: ArtifactHandle) -> BinaryIO:
        try:
            return handle.path.open("rb")
        except OSError as e:
            raise StorageError(f"Cannot read artifact {handle.key}: {e}") from e

    def iter_chunks(self, handle: ArtifactHandle, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        with self.read(handle) as f:
            while True:
                try:
                    chunk = f.read(chunk_size)
                except OSError as e:
                    raise StorageError(f"Cannot read artifact {handle.key}: {e}") from e
                if not chunk:
                    return
                yield chunk

    def release(self, handle: ArtifactHandle) -> bool:
        """Delete an artifact. Safe to call more than once.

        Returns True only for the call that actually released a live handle.
        Deletion errors are logged, never raised.
        """
        with self._lock:
            live = self._live.pop(handle.key, None)
        if live is None:
            return False
        try:
            handle.path.unlink(missing_ok=True)
        except OSError as e:
            self.log.warning("Failed to delete artifact %s: %s", handle.key, e,
                             extra={"request_id": handle.request_id})
        return True

    def live_artifacts(self) -> List[ArtifactHandle]:
        with self._lock:
            return list(self._live.values())

    def scope(self, request_id: str) -> "ArtifactScope":
        return ArtifactScope(self, request_id)

    # ----------------------------
    # Startup / shutdown
    # ----------------------------

    def purge(self) -> int:
        """
        Delete leftover files in both roots. Run at startup and shutdown only.
        """
        removed = 0
        for root in (self.cfg.incoming_dir, self.cfg.outgoing_dir):
            if not root.exists():
                continue
            for p in root.iterdir():
                if not p.is_file():
                    continue
                try:
                    p.unlink(missing_ok=True)
                    removed += 1
                except OSError as e:
                    self.log.warning("Storage purge failed for %s: %s", p, e)
        with self._lock:
            self._live.clear()
        if removed:
            self.log.info("Storage purge: removed %s leftover artifact(s)", removed)
        return removed


class ArtifactScope:
    """All artifacts of one request; ``close`` releases each exactly once."""

    def __init__(self, store: TransientStore, request_id: str):
        self.store = store
        self.request_id = request_id
        self._handles: List[ArtifactHandle] = []
        self._closed = False
        self._lock = threading.Lock()

    @property
    def handles(self) -> List[ArtifactHandle]:
        return list(self._handles)

    @property
    def closed(self) -> bool:
        return self._closed

    def materialize(self, data: bytes, *, kind: str, filename: Optional[str] = None) -> ArtifactHandle:
        if self._closed:
            raise StorageError("Artifact scope is already closed")
        handle = self.store.materialize(data, request_id=self.request_id, kind=kind, filename=filename)
        with self._lock:
            closed = self._closed
            if not closed:
                self._handles.append(handle)
        if closed:
            # The request ended while the write was in flight.
            self.store.release(handle)
            raise StorageError("Artifact scope was closed during write")
        return handle

    def close(self, *_args: object) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handles, self._handles = self._handles, []
        for handle in reversed(handles):
            self.store.release(handle)

    def __enter__(self) -> "ArtifactScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
