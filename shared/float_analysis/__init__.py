"""
Float Analysis Module
Tolerant parsing of the FP16 demotion plugin's artifacts and the positional
source comparison shared by every presentation layer.
"""

from .sanitizer import (
    sanitize,
    parse_float_map,
)
from .report_parser import (
    SECTION_HEADERS,
    normalize_key,
    parse_memory_report,
    summarize_memory,
    partition_float_records,
)
from .code_diff import (
    classify_line_change,
    compute_differences,
    count_by_classification,
)

__all__ = [
    'sanitize',
    'parse_float_map',
    'SECTION_HEADERS',
    'normalize_key',
    'parse_memory_report',
    'summarize_memory',
    'partition_float_records',
    'classify_line_change',
    'compute_differences',
    'count_by_classification',
]
