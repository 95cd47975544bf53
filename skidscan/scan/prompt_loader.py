from pathlib import Path

from skidscan.scan.exceptions import PromptLoadError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def load_solve_prompt(path: Path | None = None) -> str:
    """Load the system prompt used to extract and solve problems.

    Args:
        path: Path to the prompt file.
              Defaults to the bundled solve_prompt.txt.

    Raises:
        PromptLoadError: if the file cannot be read.
    """
    return _read(path or _DEFAULT_PROMPT_DIR / "solve_prompt.txt")


def load_improve_prompt(path: Path | None = None) -> str:
    """Load the system prompt used to refine an existing answer."""
    return _read(path or _DEFAULT_PROMPT_DIR / "improve_prompt.txt")


def with_traits(prompt: str, traits: str | None) -> str:
    """Append user-defined persona traits to a system prompt."""
    if not traits:
        return prompt
    return prompt + f"\nUser defined traits:\n<traits>\n{traits}\n</traits>\n"


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptLoadError(f"Failed to load prompt template: {exc}") from exc
