from skidscan.logging.logger import Log
from skidscan.parsing.models import ImproveRequest, ImproveResponse
from skidscan.parsing.request import render_improve_xml
from skidscan.parsing.response import parse_improve_response
from skidscan.scan.exceptions import ImproveError, NoAiSourceError, UnparseableResponseError
from skidscan.scan.models import ClientFactory
from skidscan.scan.prompt_loader import load_improve_prompt, with_traits
from skidscan.sources.models import AiSource
from skidscan.sources.registry import SourceRegistry
from skidscan.store.models import FileItem
from skidscan.store.store import ScanStore


class SolutionImprover:
    """Refines one solved problem using a user suggestion.

    Sources are tried once each, active source first, then the others in
    configured order. The first parseable answer replaces the problem's
    answer and explanation in the store.
    """

    def __init__(
        self,
        store: ScanStore,
        registry: SourceRegistry,
        client_factory: ClientFactory,
        system_prompt: str | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._client_factory = client_factory
        self._system_prompt = system_prompt if system_prompt is not None else load_improve_prompt()

    async def improve(self, url: str, problem_index: int, suggestion: str) -> ImproveResponse:
        item, request = self._build_request(url, problem_index, suggestion)
        prompt = render_improve_xml(request)
        last_error: Exception = NoAiSourceError("No AI source is enabled with an API key")
        for source in self._registry.preferred_chain(item.mime_type):
            try:
                result = await self._ask(item, source, prompt)
            except Exception as exc:
                last_error = exc
                Log.warning(f"Improve via '{source.display_name}' failed: {exc}")
                continue
            finally:
                self._store.clear_streamed_output(url)
            self._store.update_problem(
                url,
                problem_index,
                result.improved_answer,
                result.improved_explanation,
            )
            Log.info(f"Improved problem {problem_index} of {url} via '{source.display_name}'")
            return result

        raise last_error

    def _build_request(
        self,
        url: str,
        problem_index: int,
        suggestion: str,
    ) -> tuple[FileItem, ImproveRequest]:
        item = next((it for it in self._store.items if it.url == url), None)
        solution = self._store.get_solution(url)
        if item is None or solution is None:
            raise ImproveError(f"No solved item for {url}")
        if not 0 <= problem_index < len(solution.problems):
            raise ImproveError(f"Problem index {problem_index} out of range for {url}")
        problem = solution.problems[problem_index]
        return item, ImproveRequest(
            problem=problem.problem,
            answer=problem.answer,
            explanation=problem.explanation,
            user_suggestion=suggestion,
        )

    async def _ask(self, item: FileItem, source: AiSource, prompt: str) -> ImproveResponse:
        client = self._client_factory(source)
        client.set_system_prompt(with_traits(self._system_prompt, source.traits))
        self._store.clear_streamed_output(item.url)
        try:
            text = await client.send_media(
                item.data,
                item.mime_type,
                prompt,
                source.model,
                lambda delta: self._store.append_streamed_output(item.url, delta),
            )
        finally:
            await client.aclose()
        result = parse_improve_response(text)
        if result is None:
            raise UnparseableResponseError(
                f"'{source.display_name}' returned a response that could not be parsed"
            )
        return result
