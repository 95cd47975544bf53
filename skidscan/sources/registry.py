import random
from collections.abc import Sequence

from skidscan.config.settings import Settings
from skidscan.sources.models import AiSource, ProviderKind


def shuffle_sources(
    sources: Sequence[AiSource],
    rng: random.Random | None = None,
) -> list[AiSource]:
    """Return a shuffled copy; the input is left untouched."""
    shuffled = list(sources)
    (rng or random).shuffle(shuffled)
    return shuffled


class SourceRegistry:
    """Ordered list of configured AI sources and the fallback policy over them."""

    def __init__(
        self,
        sources: Sequence[AiSource],
        active_source_id: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._sources = tuple(sources)
        self._active_source_id = active_source_id
        self._rng = rng

    @classmethod
    def from_settings(cls, settings: Settings, rng: random.Random | None = None) -> "SourceRegistry":
        sources = [
            AiSource(
                id=entry.id,
                provider=ProviderKind(entry.provider.lower()),
                api_key=entry.api_key,
                model=entry.model,
                name=entry.name,
                enabled=entry.enabled,
                traits=entry.traits,
                base_url=entry.base_url,
            )
            for entry in settings.ai_sources
        ]
        return cls(sources, active_source_id=settings.active_source_id, rng=rng)

    @property
    def sources(self) -> tuple[AiSource, ...]:
        return self._sources

    @property
    def active_source_id(self) -> str | None:
        return self._active_source_id

    def get(self, source_id: str) -> AiSource | None:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def eligible(self) -> list[AiSource]:
        return [source for source in self._sources if source.is_eligible]

    def active(self) -> AiSource | None:
        if self._active_source_id is None:
            return None
        for source in self.eligible():
            if source.id == self._active_source_id:
                return source
        return None

    def supports_pdf(self) -> bool:
        return any(source.provider.supports_pdf for source in self.eligible())

    def fallback_chain(self, mime_type: str | None = None) -> list[AiSource]:
        """Active source first, then the rest in a fresh random order.

        Sources that cannot accept ``mime_type`` are left out. Each call
        reshuffles, so consecutive items spread their first attempts across
        backends.
        """
        capable = [s for s in self.eligible() if s.provider.accepts(mime_type)]
        active = self.active()
        if active is not None and active in capable:
            rest = [s for s in capable if s.id != active.id]
            return [active, *shuffle_sources(rest, self._rng)]
        return shuffle_sources(capable, self._rng)

    def preferred_chain(self, mime_type: str | None = None) -> list[AiSource]:
        """Active source first, then the rest in configured order."""
        capable = [s for s in self.eligible() if s.provider.accepts(mime_type)]
        active = self.active()
        if active is None or active not in capable:
            return capable
        return [active, *(s for s in capable if s.id != active.id)]

    def snapshot(self) -> "SourceRegistry":
        return SourceRegistry(self._sources, self._active_source_id, self._rng)
