from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    host: str
    port: int

    incoming_dir: Path
    outgoing_dir: Path
    logs_dir: Path

    max_document_size: int
    chunk_size: int

    rewrite_engine: str
    object_streams: str
    linearize: bool

    cors_origins: Tuple[str, ...]

    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        host = os.getenv("HOST", "0.0.0.0").strip()
        port = _env_int("PORT", 5000)

        incoming_dir = Path(os.getenv("INCOMING_DIR", "uploads"))
        outgoing_dir = Path(os.getenv("OUTGOING_DIR", "compressed"))
        logs_dir = Path(os.getenv("LOGS_DIR", "logs"))

        max_document_size = _env_int("MAX_DOCUMENT_SIZE", 100 * 1024 * 1024)  # 100 MiB
        chunk_size = _env_int("CHUNK_SIZE", 64 * 1024)

        rewrite_engine = os.getenv("REWRITE_ENGINE", "pikepdf").strip().lower()
        object_streams = os.getenv("OBJECT_STREAMS", "disable").strip().lower()
        linearize = _env_bool("LINEARIZE", True)

        origins_env = os.getenv("CORS_ORIGINS", "*").strip()
        cors_origins = tuple(o.strip() for o in origins_env.split(",") if o.strip()) or ("*",)

        log_level = os.getenv("LOG_LEVEL", "INFO").strip()

        return Settings(
            host=host,
            port=port,
            incoming_dir=incoming_dir,
            outgoing_dir=outgoing_dir,
            logs_dir=logs_dir,
            max_document_size=max_document_size,
            chunk_size=max(1, chunk_size),
            rewrite_engine=rewrite_engine,
            object_streams=object_streams,
            linearize=linearize,
            cors_origins=cors_origins,
            log_level=log_level,
        )
