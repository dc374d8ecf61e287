"""
JSON repair pipeline for bulk import text

Each step is a pure function so it can be tested and extended alone:
  1. strip_invisible        — drop control / zero-width / BOM characters
  2. locate_root            — first '{' or '[' decides the root kind
  3. slice_payload          — cut to the LAST matching closer (drops trailing junk)
  4. strip_trailing_commas  — ",]" and ",}" → "]" and "}"
  5. parse_payload          — strict json.loads with a positional snippet on failure
"""

import json
import logging
import re
from typing import Any, Optional, Tuple

import json_repair

log = logging.getLogger(__name__)

# Control characters except \t \n \r, C1 controls, zero-width space/joiners, BOM
INVISIBLE_CHARS = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F\u200B-\u200D\uFEFF]")
TRAILING_COMMA = re.compile(r",(\s*[\]}])")
POSITION_IN_MESSAGE = re.compile(r"(?:position|char) (\d+)")

SNIPPET_RADIUS = 50


class ImportParseError(ValueError):
    """Import text could not be turned into JSON."""

    def __init__(self, message: str, position: Optional[int] = None, snippet: Optional[str] = None):
        super().__init__(message)
        self.position = position
        self.snippet = snippet


def strip_invisible(text: str) -> str:
    return INVISIBLE_CHARS.sub("", text or "").strip()


def locate_root(text: str) -> Tuple[int, str]:
    """Return (start index, expected closer) for the first '{' or '['."""
    brace = text.find("{")
    bracket = text.find("[")
    if brace != -1 and (bracket == -1 or brace < bracket):
        return brace, "}"
    if bracket != -1:
        return bracket, "]"
    raise ImportParseError("Invalid format: no JSON root ({ or [) detected.")


def slice_payload(text: str) -> str:
    """Cut the text from the root opener to the last occurrence of its closer."""
    start, closer = locate_root(text)
    end = text.rfind(closer)
    if end <= start:
        raise ImportParseError(f"Invalid format: closing '{closer}' not found.")
    return text[start:end + 1]


def strip_trailing_commas(text: str) -> str:
    return TRAILING_COMMA.sub(r"\1", text)


def error_snippet(text: str, position: int, radius: int = SNIPPET_RADIUS) -> str:
    start = max(0, position - radius)
    end = min(len(text), position + radius)
    return text[start:end]


def _error_position(error: json.JSONDecodeError) -> Optional[int]:
    if getattr(error, "pos", None) is not None:
        return error.pos
    match = POSITION_IN_MESSAGE.search(str(error))
    return int(match.group(1)) if match else None


def parse_payload(text: str) -> Any:
    """Strict parse; failures carry the position and a ±50 character snippet."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        position = _error_position(e)
        if position is None:
            raise ImportParseError(f"Data format error: {e.msg}") from e
        snippet = error_snippet(text, position)
        log.error("JSON error at pos %s. Context: ...%s...", position, snippet)
        raise ImportParseError(
            f"Data format error near position {position}. "
            f"Check for hidden characters or truncation. Snippet: \"...{snippet}...\"",
            position=position,
            snippet=snippet,
        ) from e


def repair_text(raw: str) -> str:
    """Steps 1-4: the cleaned candidate JSON text."""
    return strip_trailing_commas(slice_payload(strip_invisible(raw)))


def load_json(raw: str, lenient: bool = False) -> Any:
    """
    Run the full pipeline on raw import text.

    With lenient=True a strict parse failure falls back to json_repair,
    which closes truncated structures and fixes quoting; the strict error
    is logged but not raised.
    """
    candidate = repair_text(raw)
    try:
        return parse_payload(candidate)
    except ImportParseError as e:
        if not lenient:
            raise
        log.warning("Strict parse failed, repairing payload: %s", e)
        repaired = json_repair.loads(candidate)
        if not isinstance(repaired, (dict, list)) or not repaired:
            raise ImportParseError(f"Payload could not be repaired: {e}") from e
        return repaired


def merge_chunks(texts) -> str:
    """
    Join chunked array exports ('[ {...}, {...} ]' per chunk) into a single
    array payload. Empty chunks are dropped.
    """
    parts = []
    for text in texts:
        body = strip_invisible(text)
        body = re.sub(r"^\s*\[", "", body)
        body = re.sub(r"\]\s*$", "", body).strip().rstrip(",")
        if body:
            parts.append(body)
    return "[" + ",".join(parts) + "]"
