"""Persistence fallback policy: privileged write, else download."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import WriteError
from ..models.storage import SaveOutcome, SaveTarget
from .host import DownloadSink, HostBridge

logger = logging.getLogger(__name__)

RECORDING_PREFIX = "recording-"
EMERGENCY_PREFIX = "emergency-save-"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamped_filename(prefix: str, extension: str, moment: datetime) -> str:
    """``<prefix><ISO8601 to the second, ':' replaced by '-'>.<extension>``."""
    stamp = moment.replace(microsecond=0, tzinfo=None).isoformat().replace(":", "-")
    return f"{prefix}{stamp}.{extension}"


class Attempt(ABC):
    """One persistence strategy."""

    name = "attempt"

    @abstractmethod
    def applies(self, destination: SaveTarget) -> bool:
        pass

    @abstractmethod
    async def write(self, data: bytes, extension: str, destination: SaveTarget,
                    emergency: bool) -> SaveOutcome:
        pass


class PrivilegedWriteAttempt(Attempt):
    """Write straight to the host-granted path. Authoritative when it applies."""

    name = "privileged_write"

    def __init__(self, host: Optional[HostBridge], clock: Callable[[], datetime]):
        self.host = host
        self.clock = clock

    def applies(self, destination: SaveTarget) -> bool:
        return self.host is not None and destination.is_privileged and bool(destination.path)

    def resolve_path(self, destination: SaveTarget, extension: str, emergency: bool) -> str:
        path = Path(destination.path)
        if emergency:
            path = path.parent / timestamped_filename(EMERGENCY_PREFIX, extension, self.clock())
        elif path.suffix.lower() != f".{extension}":
            path = path.with_suffix(f".{extension}")
        return str(path)

    async def write(self, data: bytes, extension: str, destination: SaveTarget,
                    emergency: bool) -> SaveOutcome:
        path = self.resolve_path(destination, extension, emergency)
        result = await self.host.write_file(path, data)
        error = None
        if not result.success:
            error = WriteError(result.error or "Unknown write error", path=path)
        return SaveOutcome(success=result.success, method=self.name, path=path,
                           extension=extension, emergency=emergency, error=error)


class DownloadAttempt(Attempt):
    """Offer the bytes as a user download with a timestamped name."""

    name = "download"

    def __init__(self, downloads: DownloadSink, clock: Callable[[], datetime]):
        self.downloads = downloads
        self.clock = clock

    def applies(self, destination: SaveTarget) -> bool:
        return True

    async def write(self, data: bytes, extension: str, destination: SaveTarget,
                    emergency: bool) -> SaveOutcome:
        prefix = EMERGENCY_PREFIX if emergency else RECORDING_PREFIX
        filename = timestamped_filename(prefix, extension, self.clock())
        try:
            path = await self.downloads.offer(filename, data)
        except OSError as e:
            return SaveOutcome(success=False, method=self.name, path=None, extension=extension,
                               emergency=emergency, error=WriteError(str(e), path=filename))
        return SaveOutcome(success=True, method=self.name, path=path,
                           extension=extension, emergency=emergency)


class PersistencePolicy:
    """Decides at save time how bytes reach durable storage.

    Attempts are evaluated in order and the first one that applies decides
    the outcome. A privileged destination is authoritative: a failed host
    write is reported as a ``WriteError`` outcome and is not retried as a
    download.
    """

    def __init__(self, host: Optional[HostBridge], downloads: DownloadSink,
                 clock: Callable[[], datetime] = utc_now):
        self.attempts: List[Attempt] = [
            PrivilegedWriteAttempt(host, clock),
            DownloadAttempt(downloads, clock),
        ]

    async def resolve_and_write(self, data: bytes, extension: str, destination: SaveTarget,
                                emergency: bool = False) -> SaveOutcome:
        """Persist ``data`` using the first applicable attempt.

        Args:
            data: Bytes to persist
            extension: Extension of the format the bytes are in (no dot)
            destination: Resolved save target
            emergency: Use the emergency file name and never touch the main path

        Returns:
            SaveOutcome of the attempt that ran
        """
        for attempt in self.attempts:
            if not attempt.applies(destination):
                continue
            outcome = await attempt.write(data, extension, destination, emergency)
            if outcome.success:
                logger.info(f"Saved {len(data)} bytes via {outcome.method}: {outcome.path}")
            else:
                logger.error(f"Save via {outcome.method} failed: {outcome.error}")
            return outcome
        raise WriteError("No persistence strategy applies")
