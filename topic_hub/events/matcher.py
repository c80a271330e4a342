"""Hierarchical topic matching.

Topics are delimiter-separated segments (``xbox.newgame``). Patterns may use
two full-segment wildcards:

- ``*`` matches exactly one segment (``a.*.c`` matches ``a.b.c``)
- ``#`` matches zero or more segments (``a.#`` matches ``a`` and ``a.b.c``)

At most one ``#`` is accepted per pattern. Validation happens when a pattern is
compiled (at subscribe time); ``matches`` itself never raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from ..common.errors import ConfigurationError


@dataclass(frozen=True)
class TopicSyntax:
    delimiter: str = "."
    single: str = "*"
    multi: str = "#"

    def split(self, text: str) -> tuple[str, ...]:
        return tuple(text.split(self.delimiter))


DEFAULT_SYNTAX = TopicSyntax()


@dataclass(frozen=True)
class TopicPattern:
    text: str
    segments: tuple[str, ...]
    syntax: TopicSyntax = DEFAULT_SYNTAX

    @property
    def is_literal(self) -> bool:
        return all(s not in (self.syntax.single, self.syntax.multi) for s in self.segments)

    def matches(self, topic: str) -> bool:
        if self.is_literal:
            return topic == self.text
        return match_segments(self.segments, self.syntax.split(topic), self.syntax)


def _check_segments(text: str, syntax: TopicSyntax, *, kind: str) -> tuple[str, ...]:
    if not isinstance(text, str) or not text:
        raise ConfigurationError(f"{kind} must be a non-empty string")
    segments = syntax.split(text)
    if segments[0] == "" or segments[-1] == "":
        raise ConfigurationError(f"{kind} {text!r} must not start or end with {syntax.delimiter!r}")
    if "" in segments:
        raise ConfigurationError(f"{kind} {text!r} contains an empty segment")
    return segments


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str, syntax: TopicSyntax = DEFAULT_SYNTAX) -> TopicPattern:
    """Validate a subscription pattern and split it into segments."""
    segments = _check_segments(pattern, syntax, kind="pattern")
    multi_count = 0
    for seg in segments:
        if seg == syntax.multi:
            multi_count += 1
            continue
        if seg == syntax.single:
            continue
        if syntax.single in seg or syntax.multi in seg:
            raise ConfigurationError(
                f"pattern {pattern!r}: wildcard must occupy a whole segment, got {seg!r}"
            )
    if multi_count > 1:
        raise ConfigurationError(
            f"pattern {pattern!r}: at most one {syntax.multi!r} wildcard is allowed"
        )
    return TopicPattern(text=pattern, segments=segments, syntax=syntax)


def validate_pattern(pattern: str, syntax: TopicSyntax = DEFAULT_SYNTAX) -> None:
    compile_pattern(pattern, syntax)


def validate_topic(topic: str, syntax: TopicSyntax = DEFAULT_SYNTAX) -> tuple[str, ...]:
    """Publish-side validation: a concrete topic carries no wildcard."""
    segments = _check_segments(topic, syntax, kind="topic")
    for seg in segments:
        if syntax.single in seg or syntax.multi in seg:
            raise ConfigurationError(f"topic {topic!r}: wildcards are not allowed when publishing")
    return segments


def match_segments(pattern: Sequence[str], topic: Sequence[str], syntax: TopicSyntax = DEFAULT_SYNTAX) -> bool:
    """Segment-wise match with backtracking over the multi-segment wildcard.

    The wildcard first consumes zero segments; on a later mismatch it grows by
    one segment and matching resumes right after it.
    """
    p = t = 0
    multi_at = -1  # pattern index of the last multi wildcard seen
    resume_t = 0  # topic index the wildcard currently extends to
    while t < len(topic):
        if p < len(pattern) and pattern[p] == syntax.multi:
            multi_at = p
            resume_t = t
            p += 1
        elif p < len(pattern) and (pattern[p] == syntax.single or pattern[p] == topic[t]):
            p += 1
            t += 1
        elif multi_at != -1:
            resume_t += 1
            t = resume_t
            p = multi_at + 1
        else:
            return False
    while p < len(pattern) and pattern[p] == syntax.multi:
        p += 1
    return p == len(pattern)


def matches(pattern: str, topic: str, syntax: TopicSyntax = DEFAULT_SYNTAX) -> bool:
    """Return True if the concrete ``topic`` matches ``pattern``."""
    if pattern == topic:
        return True
    return match_segments(syntax.split(pattern), syntax.split(topic), syntax)
