"""Host collaborators: privileged filesystem access and download fallback."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..models.storage import SaveDialogResult, WriteResult

logger = logging.getLogger(__name__)

_FORBIDDEN_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_component(text: Optional[str], fallback: str) -> str:
    """Strip characters that are invalid in file names (``< > : " / \\ | ? *``)."""
    cleaned = _FORBIDDEN_CHARS.sub("", text or "").strip()
    return cleaned or fallback


class HostBridge(ABC):
    """Abstract collaborator available only in a privileged runtime."""

    @abstractmethod
    async def choose_save_destination(self, title: str, input_source_label: str) -> SaveDialogResult:
        """Ask the user where to save the recording."""
        pass

    @abstractmethod
    async def default_save_destination(self, title: str, input_source_label: str) -> str:
        """Deterministic default path for a new recording."""
        pass

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> WriteResult:
        """Write ``data`` to ``path``; failures are reported, not raised."""
        pass


class DesktopHost(HostBridge):
    """Host bridge backed by the local filesystem."""

    def __init__(self,
                 desktop_dir: Optional[str] = None,
                 prompt: Optional[Callable[[str], str]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize desktop host.

        Args:
            desktop_dir: Directory for default destinations (default: ~/Desktop)
            prompt: Callable asking the user for a path given a suggested default;
                an empty answer cancels. Defaults to a rich console prompt.
            clock: Time source for generated names
        """
        self.desktop_dir = Path(desktop_dir).expanduser() if desktop_dir else Path.home() / "Desktop"
        self.prompt = prompt or _console_prompt
        self.clock = clock

    def default_filename(self, title: str, input_source_label: str) -> str:
        timestamp = self.clock().strftime("%Y%m%d_%H%M%S")
        safe_title = sanitize_component(title, "recording")
        safe_label = sanitize_component(input_source_label, "mic")
        return f"{timestamp}_{safe_title}_{safe_label}.wav"

    async def default_save_destination(self, title: str, input_source_label: str) -> str:
        return str(self.desktop_dir / self.default_filename(title, input_source_label))

    async def choose_save_destination(self, title: str, input_source_label: str) -> SaveDialogResult:
        suggested = await self.default_save_destination(title, input_source_label)
        answer = await asyncio.to_thread(self.prompt, suggested)
        if not answer or not answer.strip():
            logger.info("Save destination selection canceled")
            return SaveDialogResult(canceled=True)
        path = Path(answer.strip()).expanduser()
        if path.suffix.lower() not in (".wav", ".mp3"):
            path = path.with_suffix(".wav")
        return SaveDialogResult(canceled=False, path=str(path))

    async def write_file(self, path: str, data: bytes) -> WriteResult:
        try:
            await asyncio.to_thread(_write_bytes, Path(path), data)
        except OSError as e:
            logger.error(f"Error writing {path}: {e}")
            return WriteResult(success=False, error=str(e))
        logger.info(f"File written: {path} ({len(data)} bytes)")
        return WriteResult(success=True)


class DownloadSink:
    """Browser-style download: offered bytes land in the downloads directory."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory).expanduser() if directory else Path.home() / "Downloads"

    async def offer(self, filename: str, data: bytes) -> str:
        """Store ``data`` under ``filename``, never overwriting an existing file.

        Returns:
            Full path of the stored download

        Raises:
            OSError: If the file cannot be written
        """
        return await asyncio.to_thread(self._store, filename, data)

    def _store(self, filename: str, data: bytes) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / filename
        counter = 1
        while target.exists():
            target = self.directory / f"{Path(filename).stem} ({counter}){Path(filename).suffix}"
            counter += 1
        target.write_bytes(data)
        logger.info(f"Download saved: {target} ({len(data)} bytes)")
        return str(target)


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _console_prompt(suggested: str) -> str:
    from rich.prompt import Prompt
    return Prompt.ask("Save recording to", default=suggested)
