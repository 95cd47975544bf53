from abc import ABC, abstractmethod

from skidscan.ai.models import AiModel, ChatMessage, DeltaCallback


class BaseAiClient(ABC):
    """Contract for provider-specific AI clients.

    Every implementation exposes the same streaming surface: text deltas are
    forwarded to ``on_delta`` as they arrive, and the call returns the full
    concatenated text. A stream that ends abnormally raises; partial text is
    never returned as a result.
    """

    def __init__(self) -> None:
        self._system_prompt: str | None = None

    @property
    def system_prompt(self) -> str | None:
        return self._system_prompt

    def set_system_prompt(self, prompt: str) -> None:
        """Set persona and task instructions for subsequent calls."""
        self._system_prompt = prompt

    @abstractmethod
    async def send_media(
        self,
        media: bytes,
        mime_type: str,
        prompt: str | None = None,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        """Send one inline image/PDF payload plus an optional text prompt.

        Raises:
            AiClientError: on network, authentication, or stream failures.
        """

    @abstractmethod
    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        """Send a text-only conversation and stream the reply."""

    @abstractmethod
    async def get_available_models(self) -> list[AiModel]:
        """List models offered by the provider (best effort)."""

    async def aclose(self) -> None:
        """Release transport resources held by the client."""
