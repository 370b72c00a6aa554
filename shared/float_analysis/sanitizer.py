"""
Repair and parse the float map artifact (float_map.json).

The plugin writes this file with printf-style formatting, so it is not always
valid JSON: non-breaking spaces show up in whitespace and values that overflow
half precision are printed as bare ``inf`` / ``nan`` tokens.
"""

from __future__ import annotations
import json, logging, re
from typing import Any, List

from pydantic import ValidationError

from shared.models import FloatMapParseResult, FloatRecord

logger = logging.getLogger("shared.float_analysis.sanitizer")

NBSP = "\u00a0"

# A JSON string literal is matched first and left alone, so tokens inside
# quoted text are never rewritten. Otherwise: a bare inf/-inf/nan in value
# position, i.e. after a colon and followed by ',', '}' or end of line.
_BARE_TOKEN_RE = re.compile(
    r'(?P<string>"(?:[^"\\]|\\.)*")'
    r'|(?P<prefix>:[ \t]*)(?P<token>-?inf|nan)(?=[ \t\r]*(?:[,}]|$))',
    re.MULTILINE,
)

_TOKEN_REPLACEMENTS = {
    "inf": '"Infinity"',
    "-inf": '"-Infinity"',
    "nan": '"NaN"',
}


def _replace_bare_token(match: "re.Match[str]") -> str:
    if match.group("string") is not None:
        return match.group("string")
    return match.group("prefix") + _TOKEN_REPLACEMENTS[match.group("token")]


def sanitize(raw: str) -> str:
    """Return ``raw`` with the known malformations fixed, in order:

    1. every non-breaking space becomes an ordinary space;
    2. bare ``inf`` values become ``"Infinity"`` (``-inf`` and ``nan`` likewise).
    """
    text = raw.replace(NBSP, " ")
    return _BARE_TOKEN_RE.sub(_replace_bare_token, text)


def _load_keeping_number_text(text: str) -> Any:
    # Numbers stay as their source text so FloatRecord.value is exactly what the tool printed
    return json.loads(text, parse_float=str, parse_int=str, parse_constant=str)


def parse_float_map(raw: str) -> FloatMapParseResult:
    """Sanitize and parse a float map; never raises.

    A payload that is still not valid JSON, or whose top level is not an
    array, gives an empty record list plus an ``error`` diagnostic. Entries
    that are not valid records are skipped and counted in ``error``.
    """
    try:
        payload = _load_keeping_number_text(sanitize(raw))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"⚠️ float map is not valid JSON after sanitization: {e}")
        return FloatMapParseResult(records=[], error=f"Invalid float map JSON: {e}")

    if not isinstance(payload, list):
        logger.warning(f"⚠️ float map top level is {type(payload).__name__}, expected array")
        return FloatMapParseResult(
            records=[], error=f"Float map must be a JSON array, got {type(payload).__name__}"
        )

    records: List[FloatRecord] = []
    skipped: List[str] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            skipped.append(f"#{index}: not an object")
            continue
        try:
            records.append(FloatRecord.model_validate(item))
        except ValidationError as e:
            skipped.append(f"#{index}: {e.error_count()} validation error(s)")

    error = None
    if skipped:
        error = f"Skipped {len(skipped)} invalid float map entr{'y' if len(skipped) == 1 else 'ies'}: " + "; ".join(skipped)
        logger.warning(f"⚠️ {error}")

    logger.debug(f"Parsed float map with {len(records)} records")
    return FloatMapParseResult(records=records, error=error)
