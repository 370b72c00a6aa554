from __future__ import annotations
from typing import Dict, List

from shared.models import DiffClassification, DiffEntry


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").split("\n")


def classify_line_change(original: str, transformed: str) -> DiffClassification:
    if "float" in original and "__fp16" in transformed:
        return DiffClassification.DEMOTION
    return DiffClassification.OTHER


def compute_differences(original: str, transformed: str) -> List[DiffEntry]:
    """Positional line-by-line comparison of original and transformed source.

    Line ``i`` of one text is compared with line ``i`` of the other; a line
    missing from the shorter text counts as empty. This is not an alignment
    diff: one inserted or deleted line shifts every later comparison.
    """
    a = _split_lines(original)
    b = _split_lines(transformed)
    entries: List[DiffEntry] = []
    for i in range(max(len(a), len(b))):
        old = a[i] if i < len(a) else ""
        new = b[i] if i < len(b) else ""
        if old != new:
            entries.append(DiffEntry(
                line_number=i + 1,
                original=old,
                transformed=new,
                classification=classify_line_change(old, new),
            ))
    return entries


def count_by_classification(entries: List[DiffEntry]) -> Dict[str, int]:
    counts = {c.value: 0 for c in DiffClassification}
    for entry in entries:
        counts[entry.classification.value] += 1
    return counts
