"""Example AI client.

Use this module as a reference when implementing new provider clients.
Implement BaseAiClient and register the provider in AiClientFactory.
"""

import json
from typing import ClassVar

from skidscan.ai.base import BaseAiClient
from skidscan.ai.models import AiModel, ChatMessage, DeltaCallback


class ExampleClient(BaseAiClient):
    """Example client that streams a fixed valid solve response.

    No network calls. Useful for local development, tests, and as a template
    for building real provider clients.
    """

    DEFAULT_RESPONSE: ClassVar[dict[str, object]] = {
        "problems": [
            {
                "problem": "What is 1 + 1?",
                "answer": "2",
                "explanation": "Adding one to one gives two.",
            }
        ],
    }
    CHUNK_SIZE: ClassVar[int] = 16

    def __init__(self, response: str | None = None) -> None:
        super().__init__()
        self._response = response if response is not None else json.dumps(self.DEFAULT_RESPONSE)

    async def send_media(
        self,
        media: bytes,
        mime_type: str,
        prompt: str | None = None,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        _ = media, mime_type, prompt, model
        return self._stream(on_delta)

    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        _ = messages, model
        return self._stream(on_delta)

    async def get_available_models(self) -> list[AiModel]:
        return [AiModel(name="example", display_name="Example")]

    def _stream(self, on_delta: DeltaCallback | None) -> str:
        if on_delta is not None:
            for start in range(0, len(self._response), self.CHUNK_SIZE):
                on_delta(self._response[start:start + self.CHUNK_SIZE])
        return self._response
