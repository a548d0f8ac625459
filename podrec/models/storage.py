"""Persistence-related data models."""

from dataclasses import dataclass
from typing import Optional

from ..errors import RecorderError, WriteError


@dataclass(frozen=True)
class SaveTarget:
    """Resolved save destination.

    ``path=None`` means no host-granted filesystem access, which routes the
    save through the download fallback.
    """
    path: Optional[str]
    is_privileged: bool = False


@dataclass(frozen=True)
class SaveDialogResult:
    """Result of asking the host for a save destination."""
    canceled: bool
    path: Optional[str] = None


@dataclass(frozen=True)
class WriteResult:
    """Result reported by the host write operation."""
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ConvertedAudio:
    """Bytes ready to persist, plus the format they ended up in."""
    data: bytes
    extension: str
    media_type: str
    fell_back: bool = False
    error: Optional[RecorderError] = None


@dataclass(frozen=True)
class SaveOutcome:
    """Typed result of one persistence attempt."""
    success: bool
    method: str  # "privileged_write" or "download"
    path: Optional[str]
    extension: str
    emergency: bool = False
    error: Optional[WriteError] = None
