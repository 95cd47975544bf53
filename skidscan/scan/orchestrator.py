"""Scan orchestrator: bounded worker pool with per-item source fallback.

Run: check preconditions -> drop stale solutions -> K workers claim items
from a shared index -> each item tries its fallback chain one source at a
time, each source wrapped in retry-with-backoff -> terminal status written
to the store.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from skidscan.config.settings import Settings
from skidscan.logging.logger import Log
from skidscan.parsing.response import parse_solve_response
from skidscan.scan.exceptions import (
    NoAiSourceError,
    NoModelError,
    PdfBlockedError,
    ScanInProgressError,
    UnparseableResponseError,
)
from skidscan.scan.models import ClientFactory, Notifier, ScanNotice, ScanReport
from skidscan.scan.prompt_loader import load_solve_prompt, with_traits
from skidscan.scan.retry import (
    DEFAULT_INITIAL_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    retry_async,
)
from skidscan.sources.models import AiSource
from skidscan.sources.registry import SourceRegistry
from skidscan.store.models import (
    FileItem,
    ItemStatus,
    ProblemSolution,
    Solution,
    SolutionStatus,
)
from skidscan.store.store import ScanStore

DEFAULT_CONCURRENCY = 4


class ScanOrchestrator:
    """Processes every pending/failed item in the store against the AI sources."""

    def __init__(
        self,
        store: ScanStore,
        registry: SourceRegistry,
        client_factory: ClientFactory,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        system_prompt: str | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        notify: Notifier | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._client_factory = client_factory
        self._concurrency = max(1, concurrency)
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._system_prompt = system_prompt if system_prompt is not None else load_solve_prompt()
        self._sleep = sleep
        self._notify = notify or _log_notice

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: ScanStore,
        registry: SourceRegistry,
        client_factory: ClientFactory,
        notify: Notifier | None = None,
    ) -> "ScanOrchestrator":
        return cls(
            store,
            registry,
            client_factory,
            concurrency=settings.scan_concurrency,
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            notify=notify,
        )

    async def start_scan(self) -> ScanReport:
        """Run one scan over the current queue.

        Raises:
            ScanConfigurationError: when a prerequisite is missing; raised
                before any item is touched.
            ScanInProgressError: when another run is still working.
        """
        if self._store.is_working:
            raise ScanInProgressError("A scan is already running")

        registry = self._registry.snapshot()
        items_to_process = [item for item in self._store.items if item.is_scannable]
        self._check_preconditions(registry, items_to_process)

        if not items_to_process:
            self._notify(
                ScanNotice(
                    "info",
                    "All items processed",
                    "There are no pending or failed items to scan.",
                )
            )
            return ScanReport(nothing_to_do=True)

        total = len(items_to_process)
        Log.info(f"Starting scan of {total} item(s) across {len(registry.eligible())} source(s)")
        self._notify(ScanNotice("info", "Working...", f"Sending {total} item(s) to the AI..."))
        self._store.set_working(True)
        try:
            self._store.remove_solutions_by_urls(item.url for item in items_to_process)
            outcomes = await self._run_pool(items_to_process, registry)
        except Exception:
            Log.exception("Scan run failed unexpectedly")
            self._notify(
                ScanNotice(
                    "error",
                    "An unexpected error occurred",
                    "Something went wrong during the scan. Please check the logs.",
                )
            )
            raise
        finally:
            self._notify(ScanNotice("info", "All done!", "Your homework has been processed."))
            self._store.set_working(False)

        succeeded = sum(1 for ok in outcomes if ok)
        Log.info(f"Scan finished: {succeeded}/{total} item(s) succeeded")
        return ScanReport(total=total, succeeded=succeeded, failed=total - succeeded)

    def _check_preconditions(
        self,
        registry: SourceRegistry,
        items_to_process: Sequence[FileItem],
    ) -> None:
        eligible = registry.eligible()
        if not eligible:
            raise NoAiSourceError("No AI source is enabled with an API key")
        for source in eligible:
            if not source.model.strip():
                raise NoModelError(source.display_name)
        if any(item.is_pdf for item in items_to_process) and not registry.supports_pdf():
            raise PdfBlockedError("Enable a PDF-capable AI source to process PDF files")

    async def _run_pool(
        self,
        items: Sequence[FileItem],
        registry: SourceRegistry,
    ) -> list[bool]:
        outcomes: list[bool] = []
        next_index = 0

        async def worker() -> None:
            nonlocal next_index
            while True:
                # read-and-increment with no await in between: no double claims
                index = next_index
                next_index += 1
                if index >= len(items):
                    return
                outcomes.append(await self._process_one(items[index], registry))

        tasks = [
            asyncio.create_task(worker())
            for _ in range(min(self._concurrency, len(items)))
        ]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return outcomes

    async def _process_one(self, item: FileItem, registry: SourceRegistry) -> bool:
        if self._store.get_item(item.id) is None:
            Log.info(f"Item {item.id} was removed before processing, skipping")
            return False

        Log.info(f"Processing item {item.id} ({item.name})")
        self._store.update_item_status(item.id, ItemStatus.PROCESSING)
        self._store.put_solution(Solution(url=item.url, status=SolutionStatus.PROCESSING))

        last_error: Exception | None = None
        for source in registry.fallback_chain(item.mime_type):
            try:
                problems = await self._solve_with_source(item, source)
            except Exception as exc:
                last_error = exc
                self._store.clear_streamed_output(item.url)
                Log.warning(
                    f"Source '{source.display_name}' failed for item {item.id}: {exc}"
                )
                continue

            if self._store.get_item(item.id) is None:
                Log.info(f"Item {item.id} was removed during processing, result discarded")
                return False
            self._store.put_solution(
                Solution(
                    url=item.url,
                    status=SolutionStatus.SUCCESS,
                    problems=tuple(problems),
                    ai_source_id=source.id,
                )
            )
            self._store.update_item_status(item.id, ItemStatus.SUCCESS)
            Log.info(
                f"Item {item.id} solved by '{source.display_name}': {len(problems)} problem(s)"
            )
            return True

        if last_error is None:
            last_error = NoAiSourceError(f"No AI source accepts '{item.mime_type}'")
        Log.error(f"Failed to process item {item.id} after trying every source: {last_error}")
        if self._store.get_item(item.id) is None:
            return False
        self._store.put_solution(
            Solution(
                url=item.url,
                status=SolutionStatus.FAILED,
                problems=(
                    ProblemSolution(
                        problem="Processing failed after multiple retries.",
                        answer="Please check the logs for errors and try again.",
                        explanation=str(last_error),
                    ),
                ),
            )
        )
        self._store.update_item_status(item.id, ItemStatus.FAILED)
        return False

    async def _solve_with_source(
        self,
        item: FileItem,
        source: AiSource,
    ) -> list[ProblemSolution]:
        client = self._client_factory(source)
        client.set_system_prompt(with_traits(self._system_prompt, source.traits))

        def on_delta(text: str) -> None:
            self._store.append_streamed_output(item.url, text)

        async def send() -> str:
            self._store.clear_streamed_output(item.url)
            return await client.send_media(
                item.data,
                item.mime_type,
                None,
                source.model,
                on_delta,
            )

        try:
            text = await retry_async(
                send,
                self._max_attempts,
                self._initial_delay,
                sleep=self._sleep,
            )
        finally:
            await client.aclose()

        parsed = parse_solve_response(text)
        if parsed is None:
            raise UnparseableResponseError(
                f"'{source.display_name}' returned a response that could not be parsed"
            )
        return parsed.problems


def _log_notice(notice: ScanNotice) -> None:
    message = f"{notice.title} {notice.description}".strip()
    if notice.level == "error":
        Log.error(message)
    else:
        Log.info(message)
