from dataclasses import dataclass, field

from skidscan.store.models import ProblemSolution


@dataclass(frozen=True)
class SolveResponse:
    """Problems extracted from one document."""

    problems: list[ProblemSolution] = field(default_factory=list)


@dataclass(frozen=True)
class ImproveRequest:
    """Payload of a "refine this answer" request."""

    problem: str
    answer: str
    explanation: str
    user_suggestion: str


@dataclass(frozen=True)
class ImproveResponse:
    """Refined answer returned by the model."""

    improved_answer: str
    improved_explanation: str
