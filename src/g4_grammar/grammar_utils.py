"""String-literal and nesting aware helpers for rule bodies.

Every analysis that has to tell a top-level ``|`` or quantifier apart from one
inside quotes, a character class, or an embedded action goes through
``iter_code_chars``. Opaque regions are skipped as a whole, so a ``|`` inside
``'|'`` is never mistaken for alternation.
"""

from __future__ import annotations

import re
import sys
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterator

_HEADER_RE: Final = re.compile(
    r"""
    ^\s*(?:fragment\s+)?
    (?P<name>[A-Za-z_][A-Za-z0-9_]*)\s*
    (?:\[[^\]]*\]\s*)?
    (?:returns\s*\[[^\]]*\]\s*)?
    (?:throws\s+[\w\s,.]+?\s*)?
    (?:locals\s*\[[^\]]*\]\s*)?
    (?:options\s*\{[^}]*\}\s*)?
    (?:@\w+\s*\{[^}]*\}\s*)*
    :(?!:)
    """,
    re.VERBOSE,
)
_IDENTIFIER_RE: Final = re.compile(r'\b[A-Za-z_][A-Za-z0-9_]*\b')
_ELEMENT_LABEL_RE: Final = re.compile(r'\b[A-Za-z_][A-Za-z0-9_]*\s*\+?=(?!=)')
_ALT_LABEL_RE: Final = re.compile(r'#\s*[A-Za-z_][A-Za-z0-9_]*')
_ELEMENT_OPTIONS_RE: Final = re.compile(r'<[^<>]*>')
_QUANTIFIERS: Final = frozenset('?*+')
_HEX_DIGITS: Final = frozenset('0123456789abcdefABCDEF')
_LITERAL_ESCAPES: Final = {'n': '\n', 'r': '\r', 't': '\t', 'b': '\b', 'f': '\f'}
_LITERAL_RE: Final = re.compile(r"'((?:\\.|[^'\\])+)'")


def skip_literal(text: str, start: int, /) -> int:
    """Return the index just past the quoted literal starting at ``start``."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        if text[i] == '\\':
            i += 2
            continue
        if text[i] == quote:
            return i + 1
        i += 1
    return len(text)


def skip_char_class(text: str, start: int, /) -> int:
    """Return the index just past the ``[...]`` set starting at ``start``."""
    i = start + 1
    while i < len(text):
        if text[i] == '\\':
            i += 2
            continue
        if text[i] == ']':
            return i + 1
        i += 1
    return len(text)


def find_block_end(text: str, start: int, /) -> int | None:
    """Index just past the ``{...}`` block opened at ``start``, if it closes."""
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char in '\'"':
            i = skip_literal(text, i)
            continue
        if char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def skip_action(text: str, start: int, /) -> int:
    """Return the index just past the balanced ``{...}`` block at ``start``."""
    end = find_block_end(text, start)
    return len(text) if end is None else end


def iter_code_chars(text: str, /) -> Iterator[tuple[int, str, int]]:
    """Yield ``(index, char, depth)`` for characters outside opaque regions.

    Quoted literals, ``[...]`` sets and ``{...}`` actions are skipped. ``depth``
    is the parenthesis depth *before* the character is applied, so the opening
    ``(`` of a top-level group is reported at depth 0 and its ``)`` at depth 1.
    """
    depth = 0
    i = 0
    while i < len(text):
        char = text[i]
        if char in '\'"':
            i = skip_literal(text, i)
            continue
        if char == '[':
            i = skip_char_class(text, i)
            continue
        if char == '{':
            i = skip_action(text, i)
            continue
        yield i, char, depth
        if char == '(':
            depth += 1
        elif char == ')':
            depth = max(0, depth - 1)
        i += 1


def find_statement_end(text: str, /) -> int | None:
    """Index of the first ``;`` that is not inside a literal, set or action."""
    for i, char, _ in iter_code_chars(text):
        if char == ';':
            return i
    return None


def strip_comment(line: str, in_block: bool, /) -> tuple[str, bool]:  # noqa: FBT001
    """Remove ``//`` and ``/* */`` comments from one source line.

    Returns the remaining code and whether a block comment is still open at
    the end of the line. Comment markers inside quoted literals are kept.
    """
    out: list[str] = []
    i = 0
    while i < len(line):
        if in_block:
            end = line.find('*/', i)
            if end < 0:
                return ''.join(out), True
            in_block = False
            i = end + 2
            continue
        char = line[i]
        if char in '\'"':
            end = skip_literal(line, i)
            out.append(line[i:end])
            i = end
            continue
        if line.startswith('//', i):
            break
        if line.startswith('/*', i):
            in_block = True
            i += 2
            continue
        out.append(char)
        i += 1
    return ''.join(out), in_block


def strip_comments(text: str, /) -> str:
    lines: list[str] = []
    in_block = False
    for line in text.split('\n'):
        code, in_block = strip_comment(line, in_block)
        lines.append(code)
    return '\n'.join(lines)


def split_rule_header(definition: str, /) -> tuple[str, str] | None:
    """Split ``[fragment] name [returns ...] : body`` into ``(name, rest)``."""
    match = _HEADER_RE.match(definition)
    if match is None:
        return None
    return match['name'], definition[match.end() :]


def rule_body(definition: str, /) -> str:
    """Text between the header colon and the terminating ``;``."""
    header = split_rule_header(definition)
    body = header[1] if header is not None else definition
    end = find_statement_end(body)
    if end is not None:
        body = body[:end]
    return strip_comments(body).strip()


def split_lexer_commands(body: str, /) -> tuple[str, list[tuple[str, str | None]]]:
    """Separate a lexer rule body from its ``-> cmd, cmd(arg)`` suffix."""
    for i, char, depth in iter_code_chars(body):
        if char == '-' and depth == 0 and body.startswith('->', i):
            pattern = body[:i].strip()
            return pattern, parse_lexer_commands(body[i + 2 :])
    return body.strip(), []


def parse_lexer_commands(text: str, /) -> list[tuple[str, str | None]]:
    commands: list[tuple[str, str | None]] = []
    for raw in text.split(','):
        part = raw.strip()
        if not part:
            continue
        match = re.fullmatch(r'([A-Za-z_]\w*)\s*(?:\(\s*([^)]*?)\s*\))?', part)
        if match is None:
            commands.append((part, None))
        else:
            commands.append((match[1], match[2]))
    return commands


def split_alternatives(body: str, /) -> list[str]:
    """Split ``body`` on top-level ``|``; empty alternatives are kept."""
    parts: list[str] = []
    start = 0
    for i, char, depth in iter_code_chars(body):
        if char == '|' and depth == 0:
            parts.append(body[start:i].strip())
            start = i + 1
    parts.append(body[start:].strip())
    return parts


def max_nesting_depth(body: str, /) -> int:
    deepest = 0
    for _, char, depth in iter_code_chars(body):
        if char == '(':
            deepest = max(deepest, depth + 1)
    return deepest


def iter_quantifiers(body: str, /) -> Iterator[tuple[int, str, int]]:
    """Yield ``(index, quantifier, depth)``; ``*?`` style suffixes count once."""
    for i, char, depth in iter_code_chars(body):
        if char not in _QUANTIFIERS:
            continue
        if char == '?' and i > 0 and body[i - 1] in '*+':
            continue
        if char == '?' and i > 1 and body[i - 1] == '?' and body[i - 2] != '?':
            continue
        # list labels such as ``ids+=ID``
        if char == '+' and body.startswith('+=', i):
            continue
        yield i, char, depth


def cyclomatic_complexity(body: str, /) -> int:
    complexity = 1
    for _, char, depth in iter_code_chars(body):
        if char == '|' and depth == 0:
            complexity += 1
    for _, _, depth in iter_quantifiers(body):
        if depth == 0:
            complexity += 1
    return complexity


def strip_literals(text: str, /) -> str:
    return re.sub(r"'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"", ' ', text)


def remove_opaque(text: str, /, *, keep_literals: bool = False) -> str:
    """Replace actions, sets and (optionally) literals with spaces."""
    out: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char in '\'"':
            end = skip_literal(text, i)
            out.append(text[i:end] if keep_literals else ' ')
            i = end
        elif char == '[':
            i = skip_char_class(text, i)
            out.append(' ')
        elif char == '{':
            i = skip_action(text, i)
            if i < len(text) and text[i] == '?':
                i += 1
            out.append(' ')
        else:
            out.append(char)
            i += 1
    return ''.join(out)


def normalize_alternative(alternative: str, /) -> str:
    """Canonical form used to compare alternatives for equality."""
    text = remove_opaque(alternative, keep_literals=True)
    text = _ALT_LABEL_RE.sub(' ', text)
    text = _ELEMENT_LABEL_RE.sub(' ', text)
    text = _ELEMENT_OPTIONS_RE.sub(' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def clean_parser_body(body: str, /) -> str:
    """Drop actions, predicates, labels and element options from a body."""
    text = remove_opaque(body, keep_literals=True)
    text = _ALT_LABEL_RE.sub(' ', text)
    text = _ELEMENT_LABEL_RE.sub(' ', text)
    return _ELEMENT_OPTIONS_RE.sub(' ', text)


def extract_identifiers(text: str, /) -> list[str]:
    return _IDENTIFIER_RE.findall(text)


def unicode_escape(text: str, start: int, /) -> tuple[str | None, int]:
    """Decode the ``\\u`` escape whose digits begin at ``start``.

    Returns the character, or ``None`` when the escape is malformed or out of
    range, and the offset just past the escape.
    """
    if text.startswith('{', start):
        end = text.find('}', start)
        if end < 0:
            return None, len(text)
        digits, after = text[start + 1 : end], end + 1
    else:
        digits = text[start : start + 4]
        after = start + len(digits)
        if len(digits) != 4:  # noqa: PLR2004
            return None, after
    if not digits or not set(digits) <= _HEX_DIGITS:
        return None, after
    code = int(digits, 16)
    if code > sys.maxunicode:
        return None, after
    return chr(code), after


def unescape_literal(literal: str, /, *, strict: bool = False) -> str:
    """Decode the contents of a quoted literal (without its quotes).

    A malformed ``\\u`` escape is kept as written, or raises ``ValueError``
    when ``strict`` is set.
    """
    out: list[str] = []
    i = 0
    while i < len(literal):
        char = literal[i]
        if char != '\\' or i + 1 >= len(literal):
            out.append(char)
            i += 1
            continue
        escape = literal[i + 1]
        if escape == 'u':
            decoded, end = unicode_escape(literal, i + 2)
            if decoded is None:
                if strict:
                    msg = f'Invalid unicode escape: {literal[i:end]!r}'
                    raise ValueError(msg)
                decoded = literal[i:end]
            out.append(decoded)
            i = end
            continue
        out.append(_LITERAL_ESCAPES.get(escape, escape))
        i += 2
    return ''.join(out)


def literal_only(pattern: str, /) -> str | None:
    """Return the decoded text if ``pattern`` is exactly one quoted literal."""
    pattern = pattern.strip()
    if len(pattern) < 2 or pattern[0] != "'":  # noqa: PLR2004
        return None
    if skip_literal(pattern, 0) != len(pattern) or pattern[-1] != "'":
        return None
    return unescape_literal(pattern[1:-1])


def raw_literals(text: str, /) -> list[str]:
    """Undecoded contents of every single-quoted literal in ``text``, in order."""
    return _LITERAL_RE.findall(text)


def find_literals(text: str, /) -> list[str]:
    """Decoded contents of every single-quoted literal in ``text``, in order."""
    return [unescape_literal(raw) for raw in raw_literals(text)]
