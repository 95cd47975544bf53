import asyncio
import base64
import time
from typing import Any

import httpx
import openai

from skidscan.ai.base import BaseAiClient
from skidscan.ai.exceptions import (
    AiAuthenticationError,
    AiClientError,
    AiNetworkError,
    AiStreamError,
    AiTimeoutError,
)
from skidscan.ai.models import AiModel, ChatMessage, DeltaCallback, OpenAiConfig
from skidscan.logging.logger import Log

DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
_OPENAI_PATH_SUFFIX = "/v1"
_TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled", "incomplete"})


def normalize_base_url(base_url: str | None) -> str | None:
    """Ensure custom OpenAI-compatible roots end in ``/v1``."""
    if not base_url or not base_url.strip():
        return None
    normalized = base_url.strip().rstrip("/")
    if normalized.endswith(_OPENAI_PATH_SUFFIX):
        return normalized
    return f"{normalized}{_OPENAI_PATH_SUFFIX}"


class OpenAIClient(BaseAiClient):
    """AI client built on the OpenAI Responses API.

    With ``OpenAiConfig.streaming`` the response is consumed as server-sent
    deltas. Otherwise a background response is created and polled every
    ``poll_interval_seconds``; newly visible text is reported as deltas.
    Either way one attempt is bounded by ``max_poll_seconds``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str | None = None,
        config: OpenAiConfig | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        super().__init__()
        self._config = config or OpenAiConfig()
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=normalize_base_url(base_url),
            timeout=self._config.timeout_seconds,
        )

    async def send_media(
        self,
        media: bytes,
        mime_type: str,
        prompt: str | None = None,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        user_content: list[dict[str, Any]] = []
        if prompt:
            user_content.append({"type": "input_text", "text": prompt})
        encoded = base64.b64encode(media).decode("ascii")
        user_content.append(
            {"type": "input_image", "image_url": f"data:{mime_type};base64,{encoded}"}
        )
        items = self._system_items()
        items.append({"role": "user", "content": user_content})
        return await self._run(items, model, on_delta)

    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        items = self._system_items()
        items.extend({"role": m.role, "content": m.content} for m in messages)
        return await self._run(items, model, on_delta)

    async def get_available_models(self) -> list[AiModel]:
        try:
            page = await self._client.models.list()
        except openai.APIError as exc:
            raise _translate_error(exc) from exc
        return [AiModel(name=m.id, display_name=m.id) for m in page.data]

    async def aclose(self) -> None:
        await self._client.close()

    def _system_items(self) -> list[dict[str, Any]]:
        if not self._system_prompt:
            return []
        return [
            {
                "role": "system",
                "content": [{"type": "input_text", "text": self._system_prompt}],
            }
        ]

    async def _run(
        self,
        items: list[dict[str, Any]],
        model: str | None,
        on_delta: DeltaCallback | None,
    ) -> str:
        model_name = model or DEFAULT_OPENAI_MODEL
        try:
            if self._config.streaming:
                return await asyncio.wait_for(
                    self._consume_stream(items, model_name, on_delta),
                    timeout=self._config.max_poll_seconds,
                )
            return await self._poll(items, model_name, on_delta)
        except asyncio.TimeoutError as exc:
            raise AiTimeoutError("OpenAI response polling timed out") from exc
        except AiClientError:
            raise
        except (openai.APIError, httpx.HTTPError) as exc:
            raise _translate_error(exc) from exc

    async def _consume_stream(
        self,
        items: list[dict[str, Any]],
        model: str,
        on_delta: DeltaCallback | None,
    ) -> str:
        aggregated = ""
        async with self._client.responses.stream(model=model, input=items) as stream:
            async for event in stream:
                if event.type == "response.output_text.delta" and isinstance(event.delta, str):
                    aggregated += event.delta
                    if on_delta is not None:
                        on_delta(event.delta)
                elif event.type == "error":
                    raise AiStreamError(f"OpenAI stream error: {event.message}")
                elif event.type == "response.failed":
                    raise AiStreamError(f"OpenAI response failed: {_failure_message(event.response)}")
            final = await stream.get_final_response()
        if not aggregated:
            aggregated = final.output_text or ""
        return aggregated.strip()

    async def _poll(
        self,
        items: list[dict[str, Any]],
        model: str,
        on_delta: DeltaCallback | None,
    ) -> str:
        response = await self._client.responses.create(model=model, input=items, background=True)
        deadline = time.monotonic() + self._config.max_poll_seconds
        seen = ""
        while True:
            text = response.output_text or ""
            if len(text) > len(seen) and text.startswith(seen):
                delta = text[len(seen):]
                seen = text
                if on_delta is not None:
                    on_delta(delta)
            if response.status in _TERMINAL_STATUSES:
                break
            if time.monotonic() >= deadline:
                await self._cancel(response.id)
                raise AiTimeoutError("OpenAI response polling timed out")
            await asyncio.sleep(self._config.poll_interval_seconds)
            response = await self._client.responses.retrieve(response.id)
        if response.status != "completed":
            raise AiStreamError(
                f"OpenAI response ended with status '{response.status}': {_failure_message(response)}"
            )
        return (response.output_text or seen).strip()

    async def _cancel(self, response_id: str) -> None:
        try:
            await self._client.responses.cancel(response_id)
        except openai.APIError as exc:
            Log.warning(f"Failed to cancel OpenAI response {response_id}: {exc}")


def _failure_message(response: Any) -> str:
    error = getattr(response, "error", None)
    message = getattr(error, "message", None)
    return message or "unknown error"


def _translate_error(exc: Exception) -> AiClientError:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AiAuthenticationError(f"AI provider authentication failed: {exc}")
    if isinstance(exc, (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException)):
        return AiNetworkError(f"AI provider network error: {exc}")
    return AiNetworkError(f"AI provider API error: {exc}")
