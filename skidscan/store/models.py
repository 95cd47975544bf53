from dataclasses import dataclass, field
from enum import Enum

PDF_MIME_TYPE = "application/pdf"


class ItemStatus(str, Enum):
    RASTERIZING = "rasterizing"
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class SolutionStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class ItemSource(str, Enum):
    UPLOAD = "upload"
    CAMERA = "camera"


SCANNABLE_STATUSES = frozenset({ItemStatus.PENDING, ItemStatus.FAILED})


@dataclass(frozen=True)
class ProblemSolution:
    """One extracted problem with its final answer and worked explanation."""

    problem: str
    answer: str
    explanation: str


@dataclass(frozen=True)
class FileItem:
    """One uploaded unit of work.

    `url` is the preview handle owned by the item; it is released when the
    item leaves the store.
    """

    id: str
    data: bytes = field(repr=False)
    mime_type: str
    name: str
    url: str
    source: ItemSource = ItemSource.UPLOAD
    status: ItemStatus = ItemStatus.PENDING

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME_TYPE

    @property
    def is_scannable(self) -> bool:
        return self.status in SCANNABLE_STATUSES


@dataclass(frozen=True)
class Solution:
    """AI result for one item, keyed by the item's preview url."""

    url: str
    status: SolutionStatus
    problems: tuple[ProblemSolution, ...] = ()
    streamed_output: str = ""
    ai_source_id: str | None = None
