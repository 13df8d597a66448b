"""
Turn a dump file into a stream of credential triples.

Combines line splitting, sanitizing and parsing. Blank and unparseable lines
are skipped without being counted.
"""
from __future__ import annotations

from itertools import islice
from typing import BinaryIO, Iterator, List, Optional

from credlog_core.extractors.line_parser import LineParser
from credlog_core.extractors.sanitizer import iter_file_lines, sanitize
from credlog_core.models.common import ParsedTriple


def read_triples(handle: BinaryIO, parser: Optional[LineParser] = None) -> Iterator[ParsedTriple]:
    """
    Yield parsed triples from a binary dump stream in file order.

    Args:
        handle: Binary file-like object
        parser: Matcher chain to use (default chain when omitted)
    """
    parser = parser or LineParser()
    for raw_line in iter_file_lines(handle):
        line = sanitize(raw_line)
        if not line.strip():
            continue
        triple = parser.parse(line)
        if triple is None:
            continue
        yield ParsedTriple(
            sanitize(triple.url),
            sanitize(triple.username),
            sanitize(triple.password),
        )


def take(triples: Iterator[ParsedTriple], count: int) -> List[ParsedTriple]:
    """Pull up to ``count`` triples; an empty list means the stream is exhausted."""
    return list(islice(triples, count))


__all__ = ["read_triples", "take"]
