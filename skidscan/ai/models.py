from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

DeltaCallback = Callable[[str], None]

ChatRole = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str


@dataclass(frozen=True)
class AiModel:
    """Catalog entry used to populate model pickers."""

    name: str
    display_name: str


@dataclass(frozen=True)
class SafetySetting:
    category: str
    threshold: str


def _default_safety_settings() -> list[SafetySetting]:
    return [
        SafetySetting("HARM_CATEGORY_HARASSMENT", "BLOCK_NONE"),
        SafetySetting("HARM_CATEGORY_HATE_SPEECH", "BLOCK_NONE"),
        SafetySetting("HARM_CATEGORY_SEXUALLY_EXPLICIT", "BLOCK_NONE"),
        SafetySetting("HARM_CATEGORY_DANGEROUS_CONTENT", "BLOCK_NONE"),
    ]


@dataclass(frozen=True)
class GeminiConfig:
    """Gemini generation config; -1 lets the model pick its thinking budget."""

    thinking_budget: int = -1
    safety_settings: list[SafetySetting] = field(default_factory=_default_safety_settings)
    timeout_seconds: float = 120.0


@dataclass(frozen=True)
class OpenAiConfig:
    """Transport mode and wall-clock limits for one OpenAI attempt."""

    streaming: bool = True
    poll_interval_seconds: float = 1.0
    max_poll_seconds: float = 30.0
    timeout_seconds: float = 30.0
