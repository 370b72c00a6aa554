"""
Memory report parsing (memory_analysis.txt).

The report is free-form text written by the plugin: a title, a few
``SECTION:`` headers and indented ``Key: value`` lines. It is parsed with a
single-pass line scanner rather than a grammar, and anything unrecognized is
skipped.
"""

from __future__ import annotations
import logging, re
from typing import Dict, Iterable, List, Optional, Tuple

from shared.models import FloatRecord, MemoryReport, MemorySavings, MemorySection

logger = logging.getLogger("shared.float_analysis.report_parser")

# Matched as case-sensitive substrings, checked before the key/value pattern
SECTION_HEADERS: Tuple[Tuple[str, MemorySection], ...] = (
    ("VARIABLES:", MemorySection.VARIABLES),
    ("LITERALS:", MemorySection.LITERALS),
    ("MEMORY USAGE:", MemorySection.MEMORY),
    ("BREAKDOWN:", MemorySection.BREAKDOWN),
)

# Any other all-caps header such as "EXPLANATION:" closes the current section
_OTHER_HEADER_RE = re.compile(r"[A-Z][A-Z0-9 _/()&-]*:")
_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


def normalize_key(key: str) -> str:
    """Lower-case, trim and collapse whitespace runs to a single underscore."""
    return _WHITESPACE_RE.sub("_", key.strip().lower())


def _match_section(line: str) -> Optional[MemorySection]:
    for token, section in SECTION_HEADERS:
        if token in line:
            return section
    return None


def _split_pair(line: str) -> Optional[Tuple[str, str]]:
    if ":" not in line:
        return None
    key, value = line.split(":", 1)
    if not key.strip() or not value:
        return None
    return normalize_key(key), value.strip()


def parse_memory_report(text: str) -> MemoryReport:
    """Parse the plugin's memory report into a MemoryReport.

    Sections may appear in any order or not at all. Lines before the first
    recognized header, lines without a ``key: value`` shape and lines under an
    unrecognized header are ignored. Never raises on content.
    """
    collected: Dict[MemorySection, Dict[str, str]] = {section: {} for section in MemorySection}
    current: Optional[MemorySection] = None

    for line in text.splitlines():
        section = _match_section(line)
        if section is not None:
            current = section
            continue

        stripped = line.strip()
        if not stripped:
            continue
        if _OTHER_HEADER_RE.fullmatch(stripped):
            current = None
            continue
        if current is None:
            continue

        pair = _split_pair(line)
        if pair is None:
            continue
        key, value = pair
        collected[current][key] = value

    report = MemoryReport.model_validate(
        {section.value: pairs for section, pairs in collected.items()}
    )
    logger.debug(
        "Parsed memory report: "
        + ", ".join(f"{s.value}={len(p)}" for s, p in collected.items())
    )
    return report


def _leading_int(value: Optional[str]) -> int:
    if not value:
        return 0
    match = _LEADING_INT_RE.match(value)
    return int(match.group(1)) if match else 0


def summarize_memory(report: MemoryReport) -> MemorySavings:
    """Byte figures from the MEMORY USAGE section ("80 bytes" -> 80, missing -> 0)."""
    original_bytes = _leading_int(report.memory.original_memory_usage)
    after_bytes = _leading_int(report.memory.after_demotion)
    saved_bytes = original_bytes - after_bytes
    reduction = (saved_bytes / original_bytes) * 100 if original_bytes > 0 else 0.0
    return MemorySavings(
        original_bytes=original_bytes,
        after_bytes=after_bytes,
        saved_bytes=saved_bytes,
        reduction_percent=round(reduction, 1),
    )


def partition_float_records(records: Iterable[FloatRecord]) -> Tuple[List[FloatRecord], List[FloatRecord]]:
    """Split records into (safe, unsafe), keeping tool order within each."""
    safe: List[FloatRecord] = []
    unsafe: List[FloatRecord] = []
    for record in records:
        (safe if record.safe else unsafe).append(record)
    return safe, unsafe
