"""
Credential line parsing.

Splits one sanitized dump line into a (url, username, password) triple. The
``:`` separator is overloaded: it appears in ``scheme://``, in ports and inside
passwords. Lines are therefore offered to an ordered chain of matchers, most
structured first, and the first matcher that produces a triple wins:

1. app-scheme URL (``APP_SCHEME_TOKENS`` only) with an opaque token before
   ``@`` (``android://<b64>@com.app/:user:pass``)
2. URL with an optional numeric port and colon-free path
3. URL with a permissive host and path (non-numeric port, IPv6, query strings)
4. heuristic split after ``://`` for known scheme tokens
5. generic three-field colon split
6. generic whitespace split

A line no matcher accepts yields ``None``; callers drop it silently. Every
matcher is total and never raises on arbitrary input.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional, Protocol, Sequence

from credlog_core.models.common import ParsedTriple
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

SCHEME_SEPARATOR = "://"

# Prefix tokens that mark a line as starting with a URL (case-insensitive).
KNOWN_SCHEME_TOKENS = ("http", "android")

# Schemes whose authority carries an opaque token terminated by '@'.
APP_SCHEME_TOKENS = ("android",)

_SCHEME = r"[A-Za-z][A-Za-z0-9+.\-]*://"

APP_SCHEME_PATTERN = re.compile(
    r"((?:" + "|".join(map(re.escape, APP_SCHEME_TOKENS)) + r")://[^:/@]+@[^/:]+(?:/[^:]*)?):([^:]+):(.+)",
    re.IGNORECASE,
)
PORT_URL_PATTERN = re.compile(
    r"(" + _SCHEME + r"[^/:]+(?::\d+)?(?:/[^:]*)?):([^:]+):(.+)"
)
PERMISSIVE_URL_PATTERN = re.compile(
    r"(" + _SCHEME + r"[^/]+(?:/[^:]*)?):([^:]+):(.+)"
)


class LineMatcher(Protocol):
    """One parsing strategy."""

    name: str

    def try_match(self, line: str) -> Optional[ParsedTriple]:
        ...


class RegexMatcher:
    """Matcher backed by a pattern with url, username and password groups."""

    def __init__(self, name: str, pattern: re.Pattern):
        self.name = name
        self.pattern = pattern

    def try_match(self, line: str) -> Optional[ParsedTriple]:
        match = self.pattern.fullmatch(line)
        if match is None:
            return None
        url, username, password = match.group(1, 2, 3)
        return ParsedTriple(url, username, password)

    def __repr__(self) -> str:
        return f"RegexMatcher({self.name!r})"


class ProtocolSplitMatcher:
    """
    Split after the scheme separator for lines starting with a known token.

    Everything up to ``://`` (and for app schemes up to the following ``@``)
    is kept as the URL prefix; the rest is split on the first two colons.
    """

    name = "protocol_split"

    def __init__(
        self,
        scheme_tokens: Sequence[str] = KNOWN_SCHEME_TOKENS,
        app_scheme_tokens: Sequence[str] = APP_SCHEME_TOKENS
    ):
        self.scheme_tokens = tuple(token.lower() for token in scheme_tokens)
        self.app_scheme_tokens = tuple(token.lower() for token in app_scheme_tokens)

    def try_match(self, line: str) -> Optional[ParsedTriple]:
        lowered = line.lower()
        if not lowered.startswith(self.scheme_tokens):
            return None

        separator = line.find(SCHEME_SEPARATOR)
        if separator <= 0:
            return None

        prefix = line[:separator + len(SCHEME_SEPARATOR)]
        remainder = line[separator + len(SCHEME_SEPARATOR):]

        if lowered.startswith(self.app_scheme_tokens):
            at = remainder.find("@")
            if at > 0:
                prefix += remainder[:at + 1]
                remainder = remainder[at + 1:]

        parts = remainder.split(":", 2)
        if len(parts) < 3:
            return None
        return ParsedTriple(prefix + parts[0], parts[1], parts[2])


class ColonSplitMatcher:
    """Generic ``url:username:password`` split; the password keeps extra colons."""

    name = "colon_split"

    def try_match(self, line: str) -> Optional[ParsedTriple]:
        parts = line.split(":")
        if len(parts) < 3:
            return None
        return ParsedTriple(parts[0].strip(), parts[1].strip(), ":".join(parts[2:]))


class WhitespaceSplitMatcher:
    """Last resort: ``url username password words`` separated by whitespace."""

    name = "whitespace_split"

    def try_match(self, line: str) -> Optional[ParsedTriple]:
        parts = line.split()
        if len(parts) < 3:
            return None
        return ParsedTriple(parts[0], parts[1], " ".join(parts[2:]))


DEFAULT_MATCHERS: tuple[LineMatcher, ...] = (
    RegexMatcher("app_scheme", APP_SCHEME_PATTERN),
    RegexMatcher("url_with_port", PORT_URL_PATTERN),
    RegexMatcher("url_permissive", PERMISSIVE_URL_PATTERN),
    ProtocolSplitMatcher(),
    ColonSplitMatcher(),
    WhitespaceSplitMatcher(),
)


class LineParser:
    """
    Ordered chain of matchers; the first successful matcher wins.

    Example:
        >>> parser = LineParser()
        >>> parser.parse("https://example.com:8080:portuser:portpass")
        ParsedTriple(url='https://example.com:8080', username='portuser', password='portpass')
    """

    def __init__(self, matchers: Optional[Iterable[LineMatcher]] = None):
        self.matchers: tuple[LineMatcher, ...] = tuple(matchers) if matchers is not None else DEFAULT_MATCHERS

    @property
    def strategy_names(self) -> list[str]:
        return [matcher.name for matcher in self.matchers]

    def match(self, line: str) -> tuple[Optional[str], Optional[ParsedTriple]]:
        """Return ``(strategy_name, triple)`` or ``(None, None)`` for unparseable lines."""
        if not line or not line.strip():
            return None, None
        for matcher in self.matchers:
            triple = matcher.try_match(line)
            if triple is not None:
                return matcher.name, triple
        return None, None

    def parse(self, line: str) -> Optional[ParsedTriple]:
        return self.match(line)[1]


_default_parser = LineParser()


def parse_line(line: str) -> Optional[ParsedTriple]:
    """Parse a line with the default matcher chain."""
    return _default_parser.parse(line)


__all__ = [
    "LineMatcher",
    "RegexMatcher",
    "ProtocolSplitMatcher",
    "ColonSplitMatcher",
    "WhitespaceSplitMatcher",
    "DEFAULT_MATCHERS",
    "LineParser",
    "parse_line",
]
