"""Recursive glob matching for repository paths.

``**`` matches any number of path segments (including none), ``*`` and ``?``
match within a single segment, ``[...]`` is a character class and ``{a,b}``
expands to alternatives. Paths always use ``/`` as separator.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from policybot.errors import PatternError

SEPARATOR = "/"
GLOBSTAR = "**"


def validate_pattern(pattern: str) -> None:
    """Raise ``PatternError`` if ``pattern`` is not a well-formed glob."""
    _compile(pattern)


def glob_match(pattern: str, path: str) -> bool:
    """Check whether a single path matches ``pattern``."""
    return _match_compiled(_compile(pattern), path)


def matches_any(pattern: str, paths: list[str]) -> bool:
    """Check whether any of ``paths`` matches ``pattern``.

    Matching is existence, not count: the scan stops at the first hit.
    """
    if not paths:
        return False
    compiled = _compile(pattern)
    return any(_match_compiled(compiled, path) for path in paths)


def _compile(pattern: str) -> list[list[str]]:
    if not pattern:
        raise PatternError(pattern, "pattern is empty")
    alternatives = _expand_braces(pattern)
    for alternative in alternatives:
        for segment in alternative.split(SEPARATOR):
            _check_brackets(pattern, segment)
    return [alternative.split(SEPARATOR) for alternative in alternatives]


def _match_compiled(compiled: list[list[str]], path: str) -> bool:
    parts = path.strip(SEPARATOR).split(SEPARATOR)
    return any(_match_segments(segments, parts) for segments in compiled)


def _match_segments(segments: list[str], parts: list[str]) -> bool:
    if not segments:
        return not parts

    head, rest = segments[0], segments[1:]
    if head == GLOBSTAR:
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))

    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_segments(rest, parts[1:])


def _check_brackets(pattern: str, segment: str) -> None:
    i = 0
    while i < len(segment):
        if segment[i] == "[":
            j = i + 1
            if j < len(segment) and segment[j] in "!^":
                j += 1
            if j < len(segment) and segment[j] == "]":
                j += 1
            close = segment.find("]", j)
            if close == -1:
                raise PatternError(pattern, "unterminated character class")
            i = close + 1
        else:
            i += 1


def _expand_braces(pattern: str) -> list[str]:
    start = pattern.find("{")
    if start == -1:
        if "}" in pattern:
            raise PatternError(pattern, "unbalanced '}'")
        return [pattern]
    if "}" in pattern[:start]:
        raise PatternError(pattern, "unbalanced '}'")

    depth = 0
    end = -1
    for i in range(start, len(pattern)):
        if pattern[i] == "{":
            depth += 1
        elif pattern[i] == "}":
            depth -= 1
            if depth == 0:
                end = i
                break
    if end == -1:
        raise PatternError(pattern, "unterminated '{'")

    prefix, body, suffix = pattern[:start], pattern[start + 1:end], pattern[end + 1:]
    expanded: list[str] = []
    for option in _split_alternatives(body):
        expanded.extend(_expand_braces(prefix + option + suffix))
    return expanded


def _split_alternatives(body: str) -> list[str]:
    options = []
    depth = 0
    current = ""
    for char in body:
        if char == "," and depth == 0:
            options.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    options.append(current)
    return options
