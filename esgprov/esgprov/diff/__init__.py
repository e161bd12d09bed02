"""
Text diff engine for disclosure narratives.

- text: word/sentence tokenization, LCS alignment, segments and summary
- disclosure: draft-edit detection for rolled-over narratives
"""

from .text import (
    ChangeType,
    DiffSegment,
    DiffSummary,
    compute_sentence_level_diff,
    compute_word_level_diff,
    generate_summary,
)
from .disclosure import DisclosureComparison, compare_disclosure

__all__ = [
    "ChangeType",
    "DiffSegment",
    "DiffSummary",
    "compute_sentence_level_diff",
    "compute_word_level_diff",
    "generate_summary",
    "DisclosureComparison",
    "compare_disclosure",
]
