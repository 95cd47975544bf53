"""Parsers for raw model responses.

Both parsers accept JSON or XML, optionally wrapped in a markdown code fence.
They never raise: an unusable response is logged and reported as ``None``.
"""

import json
import re
import xml.etree.ElementTree as ET
from typing import Any

from skidscan.logging.logger import Log
from skidscan.parsing.exceptions import ResponseFormatError
from skidscan.parsing.models import ImproveResponse, SolveResponse
from skidscan.store.models import ProblemSolution

_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_solve_response(raw: str) -> SolveResponse | None:
    """Parse a solve response into problem/answer/explanation triples."""
    cleaned = strip_code_fence(raw or "")
    try:
        if cleaned.startswith("{"):
            return _solve_from_json(_load_json_object(cleaned))
        if cleaned.startswith("<"):
            return _solve_from_xml(_load_xml(cleaned))
        raise ResponseFormatError("response is neither JSON nor XML")
    except ResponseFormatError as exc:
        Log.warning(f"Failed to parse solve response: {exc}")
        Log.debug(f"Unparsed solve response:\n{raw}")
        return None


def parse_improve_response(raw: str) -> ImproveResponse | None:
    """Parse a refine-answer response (``<solution>`` XML or JSON object)."""
    cleaned = strip_code_fence(raw or "")
    try:
        if cleaned.startswith("{"):
            data = _load_json_object(cleaned)
            return ImproveResponse(
                improved_answer=_require_str(data, "improved_answer"),
                improved_explanation=_require_str(data, "improved_explanation"),
            )
        if cleaned.startswith("<"):
            root = _load_xml(cleaned)
            solution = root if root.tag == "solution" else root.find(".//solution")
            if solution is None:
                raise ResponseFormatError("missing <solution> element")
            return ImproveResponse(
                improved_answer=_child_text(solution, "improved_answer", strip=False),
                improved_explanation=_child_text(solution, "improved_explanation", strip=False),
            )
        raise ResponseFormatError("response is neither JSON nor XML")
    except ResponseFormatError as exc:
        Log.warning(f"Failed to parse improve response: {exc}")
        Log.debug(f"Unparsed improve response:\n{raw}")
        return None


def _load_json_object(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResponseFormatError(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ResponseFormatError("JSON response must be an object")
    return parsed


def _load_xml(text: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise ResponseFormatError(f"invalid XML: {exc}") from exc


def _solve_from_json(data: dict[str, Any]) -> SolveResponse:
    raw_problems = data.get("problems")
    if not isinstance(raw_problems, list):
        raise ResponseFormatError("'problems' must be a list")
    problems = []
    for index, entry in enumerate(raw_problems):
        if not isinstance(entry, dict):
            raise ResponseFormatError(f"problem at index {index} must be an object")
        problems.append(
            ProblemSolution(
                problem=_optional_str(entry, "problem", index),
                answer=_optional_str(entry, "answer", index),
                explanation=_optional_str(entry, "explanation", index),
            )
        )
    return SolveResponse(problems=problems)


def _solve_from_xml(root: ET.Element) -> SolveResponse:
    elements = [root] if root.tag == "problem" else root.findall(".//problem")
    problems = [
        ProblemSolution(
            problem=_child_text(element, "problem_text"),
            answer=_child_text(element, "answer"),
            explanation=_child_text(element, "explanation"),
        )
        for element in elements
    ]
    return SolveResponse(problems=problems)


def _child_text(parent: ET.Element, tag: str, strip: bool = True) -> str:
    child = parent.find(tag)
    if child is None:
        raise ResponseFormatError(f"<{parent.tag}> is missing <{tag}>")
    text = "".join(child.itertext())
    return text.strip() if strip else text


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ResponseFormatError(f"'{key}' must be a string")
    return value


def _optional_str(entry: dict[str, Any], key: str, index: int) -> str:
    value = entry.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ResponseFormatError(f"problem at index {index}: '{key}' must be a string")
    return value
