from collections.abc import Callable
from dataclasses import dataclass

from skidscan.ai.base import BaseAiClient
from skidscan.sources.models import AiSource

ClientFactory = Callable[[AiSource], BaseAiClient]


@dataclass(frozen=True)
class ScanNotice:
    """User-facing notification emitted by a scan run."""

    level: str  # "info" | "error"
    title: str
    description: str = ""


Notifier = Callable[[ScanNotice], None]


@dataclass(frozen=True)
class ScanReport:
    """Summary of one scan run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    nothing_to_do: bool = False
