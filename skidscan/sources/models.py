from dataclasses import dataclass
from enum import Enum

from skidscan.store.models import PDF_MIME_TYPE


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    EXAMPLE = "example"

    @property
    def supports_pdf(self) -> bool:
        return self in (ProviderKind.GEMINI, ProviderKind.EXAMPLE)

    def accepts(self, mime_type: str | None) -> bool:
        """Whether this provider can take an inline payload of ``mime_type``."""
        if mime_type == PDF_MIME_TYPE:
            return self.supports_pdf
        return True


@dataclass(frozen=True)
class AiSource:
    """One configured AI backend credential/profile."""

    id: str
    provider: ProviderKind
    api_key: str = ""
    model: str = ""
    name: str = ""
    enabled: bool = True
    traits: str | None = None
    base_url: str | None = None

    @property
    def is_eligible(self) -> bool:
        return self.enabled and bool(self.api_key.strip())

    @property
    def display_name(self) -> str:
        return self.name or self.id
