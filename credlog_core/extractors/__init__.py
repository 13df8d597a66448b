"""
Extraction of credential triples from raw dump bytes.

- sanitizer: NUL-aware line splitting and lossy UTF-8 repair
- line_parser: ordered matcher chain for the overloaded ':' separator
- dump_reader: file stream to parsed triples
"""

from credlog_core.extractors.sanitizer import iter_file_lines, split_lines, sanitize
from credlog_core.extractors.line_parser import (
    LineMatcher,
    RegexMatcher,
    ProtocolSplitMatcher,
    ColonSplitMatcher,
    WhitespaceSplitMatcher,
    DEFAULT_MATCHERS,
    LineParser,
    parse_line
)
from credlog_core.extractors.dump_reader import read_triples, take

__all__ = [
    # Sanitizer
    "iter_file_lines",
    "split_lines",
    "sanitize",
    # Parser
    "LineMatcher",
    "RegexMatcher",
    "ProtocolSplitMatcher",
    "ColonSplitMatcher",
    "WhitespaceSplitMatcher",
    "DEFAULT_MATCHERS",
    "LineParser",
    "parse_line",
    # Reader
    "read_triples",
    "take",
]
