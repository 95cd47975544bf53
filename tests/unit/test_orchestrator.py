"""Tests for the ScanOrchestrator (worker pool, fallback, retry, store updates)."""

import asyncio
import json
from unittest.mock import patch

import pytest

from skidscan.ai.base import BaseAiClient
from skidscan.ai.exceptions import AiAuthenticationError, AiNetworkError
from skidscan.ai.models import AiModel, ChatMessage, DeltaCallback
from skidscan.scan.exceptions import (
    NoAiSourceError,
    NoModelError,
    PdfBlockedError,
    ScanInProgressError,
)
from skidscan.scan.models import ScanNotice
from skidscan.scan.orchestrator import ScanOrchestrator
from skidscan.sources.models import AiSource, ProviderKind
from skidscan.sources.registry import SourceRegistry
from skidscan.store.models import (
    FileItem,
    ItemStatus,
    ProblemSolution,
    Solution,
    SolutionStatus,
)
from skidscan.store.store import ScanStore

VALID_RESPONSE = json.dumps(
    {"problems": [{"problem": "2+2?", "answer": "4", "explanation": "Add them."}]}
)


class ScriptedClient(BaseAiClient):
    """Replays scripted outcomes; the last outcome repeats once exhausted."""

    def __init__(self, *outcomes: object, pause: int = 0) -> None:
        super().__init__()
        self._outcomes = list(outcomes)
        self._pause = pause
        self.calls = 0
        self.mime_types: list[str] = []
        self.prompts: list[str | None] = []

    async def send_media(
        self,
        media: bytes,
        mime_type: str,
        prompt: str | None = None,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        self.calls += 1
        self.mime_types.append(mime_type)
        self.prompts.append(self.system_prompt)
        for _ in range(self._pause):
            await asyncio.sleep(0)
        outcome = self._outcomes[min(self.calls - 1, len(self._outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        assert isinstance(outcome, str)
        if on_delta is not None:
            on_delta(outcome[: len(outcome) // 2])
            on_delta(outcome[len(outcome) // 2:])
        return outcome

    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        raise NotImplementedError

    async def get_available_models(self) -> list[AiModel]:
        return []


def _item(item_id: str, mime_type: str = "image/png", status: ItemStatus = ItemStatus.PENDING) -> FileItem:
    return FileItem(
        id=item_id,
        data=b"payload",
        mime_type=mime_type,
        name=f"{item_id}.bin",
        url=f"preview://{item_id}",
        status=status,
    )


def _source(
    source_id: str,
    provider: ProviderKind = ProviderKind.GEMINI,
    model: str = "model-x",
    traits: str | None = None,
) -> AiSource:
    return AiSource(id=source_id, provider=provider, api_key="key", model=model, traits=traits)


def _make_orchestrator(
    items: list[FileItem],
    sources: list[AiSource],
    clients: dict[str, ScriptedClient],
    *,
    active: str | None = None,
    concurrency: int = 4,
    max_attempts: int = 1,
    sleeps: list[float] | None = None,
    notices: list[ScanNotice] | None = None,
) -> tuple[ScanOrchestrator, ScanStore]:
    store = ScanStore()
    store.add_items(items)
    registry = SourceRegistry(sources, active_source_id=active)

    async def fake_sleep(delay: float) -> None:
        if sleeps is not None:
            sleeps.append(delay)

    orchestrator = ScanOrchestrator(
        store,
        registry,
        lambda source: clients[source.id],
        concurrency=concurrency,
        max_attempts=max_attempts,
        initial_delay=5.0,
        system_prompt="SOLVE",
        sleep=fake_sleep,
        notify=notices.append if notices is not None else None,
    )
    return orchestrator, store


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_no_eligible_source_raises(self) -> None:
        disabled = AiSource(id="a", provider=ProviderKind.GEMINI, api_key="k", model="m", enabled=False)
        keyless = AiSource(id="b", provider=ProviderKind.GEMINI, api_key="  ", model="m")
        orchestrator, _store = _make_orchestrator([_item("1")], [disabled, keyless], {})
        with pytest.raises(NoAiSourceError):
            await orchestrator.start_scan()

    @pytest.mark.asyncio
    async def test_source_without_model_fails_whole_run(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE), "b": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b", model="")], clients
        )
        with pytest.raises(NoModelError, match="'b'"):
            await orchestrator.start_scan()
        assert clients["a"].calls == 0
        assert store.get_item("1").status == ItemStatus.PENDING

    @pytest.mark.asyncio
    async def test_pdf_without_capable_source_is_blocked(self) -> None:
        clients = {"o": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator(
            [_item("img"), _item("doc", mime_type="application/pdf")],
            [_source("o", provider=ProviderKind.OPENAI)],
            clients,
        )
        with pytest.raises(PdfBlockedError):
            await orchestrator.start_scan()
        assert clients["o"].calls == 0
        assert store.solutions == ()

    @pytest.mark.asyncio
    async def test_nothing_to_do_is_informational(self) -> None:
        notices: list[ScanNotice] = []
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, _store = _make_orchestrator(
            [_item("1", status=ItemStatus.SUCCESS)], [_source("a")], clients, notices=notices
        )
        report = await orchestrator.start_scan()
        assert report.nothing_to_do
        assert clients["a"].calls == 0
        assert notices[0].level == "info"
        assert "no pending or failed" in notices[0].description

    @pytest.mark.asyncio
    async def test_empty_queue_is_nothing_to_do(self) -> None:
        orchestrator, _store = _make_orchestrator([], [_source("a")], {})
        report = await orchestrator.start_scan()
        assert report.nothing_to_do

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self) -> None:
        orchestrator, store = _make_orchestrator([_item("1")], [_source("a")], {})
        store.set_working(True)
        with pytest.raises(ScanInProgressError):
            await orchestrator.start_scan()


class TestSuccessfulScan:
    @pytest.mark.asyncio
    async def test_records_problems_and_source(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator([_item("1")], [_source("a")], clients)

        report = await orchestrator.start_scan()

        solution = store.get_solution("preview://1")
        assert solution is not None
        assert solution.status == SolutionStatus.SUCCESS
        assert solution.ai_source_id == "a"
        assert solution.streamed_output == ""
        assert solution.problems == (ProblemSolution("2+2?", "4", "Add them."),)
        assert store.get_item("1").status == ItemStatus.SUCCESS
        assert report.total == 1 and report.succeeded == 1 and report.failed == 0
        assert not store.is_working

    @pytest.mark.asyncio
    async def test_streams_deltas_into_solution(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator([_item("1")], [_source("a")], clients)
        seen: list[str] = []
        store.subscribe(
            lambda event: seen.append(store.get_solution("preview://1").streamed_output)
            if event.kind == "stream_delta"
            else None
        )

        await orchestrator.start_scan()

        assert seen == [VALID_RESPONSE[: len(VALID_RESPONSE) // 2], VALID_RESPONSE]

    @pytest.mark.asyncio
    async def test_success_items_are_not_reprocessed(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        done = _item("done", status=ItemStatus.SUCCESS)
        orchestrator, store = _make_orchestrator([done, _item("new")], [_source("a")], clients)
        store.put_solution(Solution(url=done.url, status=SolutionStatus.SUCCESS))

        report = await orchestrator.start_scan()

        assert report.total == 1
        assert clients["a"].calls == 1
        assert store.get_solution(done.url).status == SolutionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_injects_traits_into_system_prompt(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, _store = _make_orchestrator(
            [_item("1")], [_source("a", traits="Be terse.")], clients
        )
        await orchestrator.start_scan()
        assert clients["a"].prompts[0].startswith("SOLVE")
        assert "<traits>\nBe terse.\n</traits>" in clients["a"].prompts[0]

    @pytest.mark.asyncio
    async def test_empty_problem_list_is_success(self) -> None:
        clients = {"a": ScriptedClient('{"problems": []}')}
        orchestrator, store = _make_orchestrator([_item("1")], [_source("a")], clients)
        await orchestrator.start_scan()
        solution = store.get_solution("preview://1")
        assert solution.status == SolutionStatus.SUCCESS
        assert solution.problems == ()


class TestFallback:
    @pytest.mark.asyncio
    async def test_falls_back_to_next_source(self) -> None:
        clients = {
            "a": ScriptedClient(AiNetworkError("a down")),
            "b": ScriptedClient(VALID_RESPONSE),
        }
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a", max_attempts=2
        )

        await orchestrator.start_scan()

        solution = store.get_solution("preview://1")
        assert solution.status == SolutionStatus.SUCCESS
        assert solution.ai_source_id == "b"
        assert all(p.problem != "Processing failed after multiple retries." for p in solution.problems)
        assert clients["a"].calls == 2
        assert clients["b"].calls == 1

    @pytest.mark.asyncio
    async def test_stops_after_first_success(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE), "b": ScriptedClient(VALID_RESPONSE)}
        orchestrator, _store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a"
        )
        await orchestrator.start_scan()
        assert clients["a"].calls == 1
        assert clients["b"].calls == 0

    @pytest.mark.asyncio
    async def test_unparseable_response_moves_to_next_source(self) -> None:
        clients = {
            "a": ScriptedClient("I cannot read this image."),
            "b": ScriptedClient(VALID_RESPONSE),
        }
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a", max_attempts=3
        )
        await orchestrator.start_scan()
        assert store.get_solution("preview://1").ai_source_id == "b"
        assert clients["a"].calls == 1

    @pytest.mark.asyncio
    async def test_exhaustion_records_last_error(self) -> None:
        clients = {
            "a": ScriptedClient(AiNetworkError("first failure")),
            "b": ScriptedClient(AiNetworkError("last failure")),
        }
        notices: list[ScanNotice] = []
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a", notices=notices
        )

        report = await orchestrator.start_scan()

        solution = store.get_solution("preview://1")
        assert solution.status == SolutionStatus.FAILED
        assert solution.ai_source_id is None
        assert len(solution.problems) == 1
        assert "last failure" in solution.problems[0].explanation
        assert store.get_item("1").status == ItemStatus.FAILED
        assert report.failed == 1
        assert notices[-1].title == "All done!"

    @pytest.mark.asyncio
    async def test_failed_source_clears_streamed_output(self) -> None:
        clients = {
            "a": ScriptedClient("garbage output"),
            "b": ScriptedClient(AiNetworkError("down")),
        }
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a"
        )
        await orchestrator.start_scan()
        assert store.get_solution("preview://1").streamed_output == ""


class TestRetryBackoff:
    @pytest.mark.asyncio
    async def test_attempts_each_source_max_attempts_times(self) -> None:
        sleeps: list[float] = []
        clients = {
            "a": ScriptedClient(AiNetworkError("a")),
            "b": ScriptedClient(AiNetworkError("b")),
        }
        orchestrator, _store = _make_orchestrator(
            [_item("1")],
            [_source("a"), _source("b")],
            clients,
            active="a",
            max_attempts=5,
            sleeps=sleeps,
        )

        await orchestrator.start_scan()

        assert clients["a"].calls == 5
        assert clients["b"].calls == 5
        assert sleeps == [5.0, 10.0, 20.0, 40.0] * 2

    @pytest.mark.asyncio
    async def test_transient_failure_recovers_on_same_source(self) -> None:
        clients = {
            "a": ScriptedClient(AiNetworkError("flaky"), VALID_RESPONSE),
            "b": ScriptedClient(VALID_RESPONSE),
        }
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a"), _source("b")], clients, active="a", max_attempts=3
        )
        await orchestrator.start_scan()
        assert store.get_solution("preview://1").ai_source_id == "a"
        assert clients["b"].calls == 0


class TestRerun:
    @pytest.mark.asyncio
    async def test_rerun_replaces_previous_failure(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        failed = _item("1", status=ItemStatus.FAILED)
        orchestrator, store = _make_orchestrator([failed], [_source("a")], clients)
        store.put_solution(
            Solution(
                url=failed.url,
                status=SolutionStatus.FAILED,
                problems=(ProblemSolution("x", "y", "old error"),),
            )
        )
        observed: list[Solution | None] = []
        store.subscribe(
            lambda event: observed.append(store.get_solution(failed.url))
            if event.kind == "solutions_removed"
            else None
        )

        await orchestrator.start_scan()

        assert observed == [None]
        assert len([s for s in store.solutions if s.url == failed.url]) == 1
        assert store.get_solution(failed.url).status == SolutionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_new_attempt_starts_in_processing_state(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator(
            [_item("1", status=ItemStatus.FAILED)], [_source("a")], clients
        )
        first_update: list[Solution] = []
        store.subscribe(
            lambda event: first_update.append(store.get_solution("preview://1"))
            if event.kind == "solution_updated" and not first_update
            else None
        )
        await orchestrator.start_scan()
        assert first_update[0].status == SolutionStatus.PROCESSING
        assert first_update[0].streamed_output == ""


class TestConcurrency:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(("n_items", "pool_size"), [(10, 3), (2, 4), (5, 1)])
    async def test_processing_never_exceeds_pool_size(self, n_items: int, pool_size: int) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE, pause=3)}
        items = [_item(str(i)) for i in range(n_items)]
        orchestrator, store = _make_orchestrator(
            items, [_source("a")], clients, concurrency=pool_size
        )
        peak = [0]

        def track(_event: object) -> None:
            peak[0] = max(peak[0], store.processing_count())

        store.subscribe(track)

        report = await orchestrator.start_scan()

        assert peak[0] == min(pool_size, n_items)
        assert report.succeeded == n_items
        assert clients["a"].calls == n_items

    @pytest.mark.asyncio
    async def test_each_item_claimed_once(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE, pause=2)}
        items = [_item(str(i)) for i in range(7)]
        orchestrator, store = _make_orchestrator(items, [_source("a")], clients, concurrency=3)
        claimed: list[str] = []
        store.subscribe(
            lambda event: claimed.append(event.key)
            if event.kind == "item_updated" and store.get_item(event.key).status == ItemStatus.PROCESSING
            else None
        )
        await orchestrator.start_scan()
        assert sorted(claimed) == sorted(item.id for item in items)


class TestMixedQueue:
    @pytest.mark.asyncio
    async def test_pdf_only_tries_pdf_capable_source(self) -> None:
        gemini = ScriptedClient(AiAuthenticationError("Gemini authentication failed: HTTP 401"))
        openai_client = ScriptedClient(VALID_RESPONSE)
        clients = {"gemini": gemini, "openai": openai_client}
        items = [_item("img1"), _item("doc1", mime_type="application/pdf")]
        orchestrator, store = _make_orchestrator(
            items,
            [_source("gemini"), _source("openai", provider=ProviderKind.OPENAI)],
            clients,
        )

        await orchestrator.start_scan()

        assert "application/pdf" not in openai_client.mime_types
        doc = store.get_solution("preview://doc1")
        assert doc.status == SolutionStatus.FAILED
        assert "authentication" in doc.problems[0].explanation
        img = store.get_solution("preview://img1")
        assert img.status == SolutionStatus.SUCCESS
        assert img.ai_source_id == "openai"


class TestRunFailure:
    @pytest.mark.asyncio
    async def test_store_failure_propagates_and_resets_working(self) -> None:
        notices: list[ScanNotice] = []
        clients = {"a": ScriptedClient(VALID_RESPONSE)}
        orchestrator, store = _make_orchestrator(
            [_item("1")], [_source("a")], clients, notices=notices
        )
        with patch.object(store, "put_solution", side_effect=RuntimeError("store corrupted")):
            with pytest.raises(RuntimeError, match="store corrupted"):
                await orchestrator.start_scan()
        assert not store.is_working
        assert [n.level for n in notices[-2:]] == ["error", "info"]
        assert notices[-1].title == "All done!"

    @pytest.mark.asyncio
    async def test_item_removed_mid_run_is_skipped(self) -> None:
        clients = {"a": ScriptedClient(VALID_RESPONSE, pause=2)}
        items = [_item("1"), _item("2")]
        orchestrator, store = _make_orchestrator(items, [_source("a")], clients, concurrency=1)

        def remove_second(event: object) -> None:
            if getattr(event, "kind", "") == "stream_delta" and store.get_item("2") is not None:
                store.remove_item("2")

        store.subscribe(remove_second)
        report = await orchestrator.start_scan()

        assert report.succeeded == 1
        assert store.get_item("2") is None
        assert store.get_solution("preview://2") is None
