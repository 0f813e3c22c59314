from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


def human_bytes(n: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    v = float(max(0, n))
    i = 0
    while v >= 1024 and i < len(units) - 1:
        v /= 1024
        i += 1
    if i == 0:
        return f"{int(v)} {units[i]}"
    return f"{v:.2f} {units[i]}"


@dataclass(frozen=True, slots=True)
class UploadRequest:
    """A decoded upload, consumed once by the pipeline."""
    original_filename: str
    payload: bytes
    declared_length: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True, slots=True)
class CompressionResult:
    """Size statistics of one rewrite.

    ``reduction`` may be negative when the rewritten document is larger.
    """
    original_size: int
    compressed_size: int
    reduction: float

    @classmethod
    def from_sizes(cls, original_size: int, compressed_size: int) -> "CompressionResult":
        if original_size <= 0:
            raise ValueError("original_size must be positive")
        reduction = (original_size - compressed_size) / original_size * 100
        return cls(
            original_size=original_size,
            compressed_size=compressed_size,
            reduction=round(reduction, 2),
        )

    def as_headers(self) -> dict:
        return {
            "X-Original-Size": str(self.original_size),
            "X-Compressed-Size": str(self.compressed_size),
            "X-Size-Reduction": f"{self.reduction:.2f}",
        }

    def summary(self) -> str:
        return (
            f"Original size: {human_bytes(self.original_size)}\n"
            f"Compressed size: {human_bytes(self.compressed_size)}\n"
            f"Reduction: {self.reduction:.2f}%"
        )


class PipelineState(str, enum.Enum):
    RECEIVED = "received"
    MATERIALIZING = "materializing"
    REWRITING = "rewriting"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.FAILED)


class DeliveryOutcome(str, enum.Enum):
    SENT = "sent"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
