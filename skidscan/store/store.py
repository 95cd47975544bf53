"""Observable item/solution state shared by the scan workers.

Every mutation replaces whole records by key (item id, solution url). Two
workers writing different keys never touch each other's records, and a write
to the same key always overwrites the full record.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from skidscan.logging.logger import Log
from skidscan.store.models import (
    FileItem,
    ItemStatus,
    ProblemSolution,
    Solution,
)
from skidscan.store.previews import PreviewHandles


@dataclass(frozen=True)
class StoreEvent:
    """Emitted to subscribers after each mutation."""

    kind: str
    key: str | None = None


StoreListener = Callable[[StoreEvent], None]


class ScanStore:
    """Single owner of file items, solutions, and streamed partial output."""

    def __init__(self, previews: PreviewHandles | None = None) -> None:
        self._previews = previews
        self._items: dict[str, FileItem] = {}
        self._solutions: dict[str, Solution] = {}
        self._listeners: list[StoreListener] = []
        self._working = False
        self.selected_url: str | None = None
        self.selected_problem = 0

    # --- observation ---

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, key: str | None = None) -> None:
        event = StoreEvent(kind=kind, key=key)
        for listener in list(self._listeners):
            listener(event)

    # --- items ---

    @property
    def items(self) -> tuple[FileItem, ...]:
        return tuple(self._items.values())

    def get_item(self, item_id: str) -> FileItem | None:
        return self._items.get(item_id)

    def add_items(self, items: Iterable[FileItem]) -> None:
        for item in items:
            if item.id in self._items:
                raise ValueError(f"Item {item.id} is already in the store")
            self._items[item.id] = item
            self._emit("item_added", item.id)

    def replace_item(self, item: FileItem) -> None:
        if item.id not in self._items:
            raise KeyError(f"Unknown item {item.id}")
        self._items[item.id] = item
        self._emit("item_updated", item.id)

    def update_item_status(self, item_id: str, status: ItemStatus) -> FileItem:
        current = self._items.get(item_id)
        if current is None:
            raise KeyError(f"Unknown item {item_id}")
        updated = replace(current, status=status)
        self.replace_item(updated)
        return updated

    def remove_item(self, item_id: str) -> None:
        """Drop an item, its solution, and release its preview handle."""
        item = self._items.pop(item_id, None)
        if item is None:
            return
        self._solutions.pop(item.url, None)
        self._release(item.url)
        if self.selected_url == item.url:
            self.selected_url = None
            self.selected_problem = 0
        self._emit("item_removed", item_id)

    def clear_all_items(self) -> None:
        """Drop every item with its solution and release every preview handle."""
        for item in self._items.values():
            self._solutions.pop(item.url, None)
            self._release(item.url)
        self._items.clear()
        self.selected_url = None
        self.selected_problem = 0
        self._emit("items_cleared")

    def processing_count(self) -> int:
        return sum(1 for item in self._items.values() if item.status == ItemStatus.PROCESSING)

    def total_bytes(self) -> int:
        return sum(len(item.data) for item in self._items.values())

    def _release(self, url: str) -> None:
        if self._previews is not None:
            self._previews.release(url)

    # --- solutions ---

    @property
    def solutions(self) -> tuple[Solution, ...]:
        return tuple(self._solutions.values())

    def get_solution(self, url: str) -> Solution | None:
        return self._solutions.get(url)

    def put_solution(self, solution: Solution) -> None:
        """Insert or fully replace the solution keyed by ``solution.url``."""
        self._solutions[solution.url] = solution
        self._emit("solution_updated", solution.url)

    def remove_solutions_by_urls(self, urls: Iterable[str]) -> None:
        removed = [url for url in set(urls) if self._solutions.pop(url, None) is not None]
        if removed:
            Log.debug(f"Removed {len(removed)} stale solution(s)")
        self._emit("solutions_removed")

    def clear_all_solutions(self) -> None:
        self._solutions.clear()
        self._emit("solutions_cleared")

    def update_problem(
        self,
        url: str,
        problem_index: int,
        answer: str,
        explanation: str,
    ) -> Solution:
        solution = self._solutions.get(url)
        if solution is None:
            raise KeyError(f"No solution for {url}")
        if not 0 <= problem_index < len(solution.problems):
            raise IndexError(f"Problem index {problem_index} out of range for {url}")
        problems = list(solution.problems)
        problems[problem_index] = ProblemSolution(
            problem=problems[problem_index].problem,
            answer=answer,
            explanation=explanation,
        )
        updated = replace(solution, problems=tuple(problems))
        self.put_solution(updated)
        return updated

    def ordered_solutions(self) -> list[tuple[FileItem, Solution]]:
        """Solutions in the visual order of their items."""
        return [
            (item, self._solutions[item.url])
            for item in self._items.values()
            if item.url in self._solutions
        ]

    # --- streamed output ---

    def append_streamed_output(self, url: str, text: str) -> None:
        solution = self._solutions.get(url)
        if solution is None:
            return
        self._solutions[url] = replace(solution, streamed_output=solution.streamed_output + text)
        self._emit("stream_delta", url)

    def clear_streamed_output(self, url: str) -> None:
        solution = self._solutions.get(url)
        if solution is None or not solution.streamed_output:
            return
        self._solutions[url] = replace(solution, streamed_output="")
        self._emit("stream_cleared", url)

    # --- run state ---

    @property
    def is_working(self) -> bool:
        return self._working

    def set_working(self, working: bool) -> None:
        self._working = working
        self._emit("working_changed")

    def select(self, url: str | None, problem_index: int = 0) -> None:
        self.selected_url = url
        self.selected_problem = problem_index
        self._emit("selection_changed", url)

    def clear_all(self) -> None:
        self.clear_all_items()
        self.clear_all_solutions()
