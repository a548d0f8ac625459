"""Persistence: host bridge, download sink and fallback policy."""

from .host import HostBridge, DesktopHost, DownloadSink, sanitize_component
from .persistence import PersistencePolicy, timestamped_filename

__all__ = [
    'HostBridge',
    'DesktopHost',
    'DownloadSink',
    'sanitize_component',
    'PersistencePolicy',
    'timestamped_filename',
]
