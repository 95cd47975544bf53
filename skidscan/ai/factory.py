from skidscan.ai.base import BaseAiClient
from skidscan.ai.example_client import ExampleClient
from skidscan.ai.gemini_client import GeminiClient
from skidscan.ai.models import GeminiConfig, OpenAiConfig
from skidscan.ai.openai_client import OpenAIClient
from skidscan.config.settings import Settings
from skidscan.sources.models import AiSource, ProviderKind


class AiClientFactory:
    """Creates the AI client for a configured source."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def create(self, source: AiSource) -> BaseAiClient:
        return self.create_for(source, self._settings)

    @classmethod
    def create_for(cls, source: AiSource, settings: Settings) -> BaseAiClient:
        """Create a client for ``source`` using provider defaults from settings."""
        if source.provider == ProviderKind.GEMINI:
            return GeminiClient(
                api_key=source.api_key,
                base_url=source.base_url or settings.gemini_base_url,
                config=cls._gemini_config(settings),
            )
        if source.provider == ProviderKind.OPENAI:
            return OpenAIClient(
                api_key=source.api_key,
                base_url=source.base_url,
                config=cls._openai_config(settings),
            )
        if source.provider == ProviderKind.EXAMPLE:
            return ExampleClient()
        supported = [kind.value for kind in ProviderKind]
        raise ValueError(
            f"Unknown AI provider '{source.provider}'. Choose from: {supported}"
        )

    @classmethod
    def _gemini_config(cls, settings: Settings) -> GeminiConfig:
        return GeminiConfig(
            thinking_budget=settings.gemini_thinking_budget,
            timeout_seconds=settings.gemini_timeout_seconds,
        )

    @classmethod
    def _openai_config(cls, settings: Settings) -> OpenAiConfig:
        return OpenAiConfig(
            streaming=settings.openai_streaming,
            poll_interval_seconds=settings.openai_poll_interval_seconds,
            max_poll_seconds=settings.openai_max_poll_seconds,
            timeout_seconds=settings.openai_timeout_seconds,
        )
