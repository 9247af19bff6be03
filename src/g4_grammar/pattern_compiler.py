"""Translate lexer-rule patterns into Python regular expressions.

Supported: quoted literals (with escapes), ``'a'..'z'`` ranges, ``[...]`` sets,
``~`` negation of set-like operands, the ``.`` wildcard, groups, alternation,
greedy and non-greedy quantifiers, and references to other lexer rules, which
are inlined. Actions and predicates raise ``PatternError``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from g4_grammar.common import MAX_FRAGMENT_INLINE_DEPTH
from g4_grammar.grammar_utils import (
    iter_code_chars,
    skip_char_class,
    skip_literal,
    split_alternatives,
    unescape_literal,
    unicode_escape,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from g4_grammar.model import GrammarModel

logger = logging.getLogger(__name__)

_IDENTIFIER_RE: Final = re.compile(r'[A-Za-z_]\w*')
_RANGE_RE: Final = re.compile(r"\s*\.\.\s*'")
_CLASS_SPECIAL: Final = frozenset('\\]^-[&~|')
_CLASS_ESCAPES: Final = {'n': '\n', 'r': '\r', 't': '\t', 'b': '\b', 'f': '\f'}
_ASCII: Final = tuple(chr(code) for code in range(128))


class PatternError(ValueError):
    """A lexer pattern uses a construct the simulator cannot express."""


@dataclass(slots=True, frozen=True)
class CompiledPattern:
    source: str
    regex: re.Pattern[str]

    def match_length(self, text: str, pos: int, /) -> int | None:
        """Length of the match at ``pos``, or ``None`` when it does not match."""
        match = self.regex.match(text, pos)
        if match is None:
            return None
        return match.end() - pos


def _is_range(atom: str, /) -> bool:
    return atom[:1] == "'" and skip_literal(atom, 0) < len(atom)


def _unescape(literal: str, /) -> str:
    try:
        return unescape_literal(literal, strict=True)
    except ValueError as e:
        raise PatternError(str(e)) from e


def _class_char(char: str, /) -> str:
    return f'\\{char}' if char in _CLASS_SPECIAL else char


def _translate_class(content: str, /) -> str:
    """Body of a Python character class equivalent to an ANTLR set body."""
    out: list[str] = []
    i = 0
    while i < len(content):
        char = content[i]
        if char != '\\':
            if char == '-' and out and i + 1 < len(content):
                out.append('-')
            else:
                out.append(_class_char(char))
            i += 1
            continue

        escape = content[i + 1 : i + 2]
        if escape == 'p' or escape == 'P':
            msg = 'Unicode property sets are not supported'
            raise PatternError(msg)
        if escape == 'u':
            decoded, end = unicode_escape(content, i + 2)
            if decoded is None:
                msg = f'Invalid unicode escape in set: {content[i:end]!r}'
                raise PatternError(msg)
            out.append(_class_char(decoded))
            i = end
            continue
        out.append(_class_char(_CLASS_ESCAPES.get(escape, escape)))
        i += 2
    return ''.join(out)


def _range_body(atom: str, /) -> str:
    """``'a'..'z'`` as a character-class body."""
    low_end = skip_literal(atom, 0)
    low = _unescape(atom[1 : low_end - 1])
    high_start = atom.index("'", low_end)
    high = _unescape(atom[high_start + 1 : -1])
    if len(low) != 1 or len(high) != 1:
        msg = f'Range bounds must be single characters: {atom}'
        raise PatternError(msg)
    return f'{_class_char(low)}-{_class_char(high)}'


def _matching_paren(text: str, start: int, /) -> int:
    for i, char, depth in iter_code_chars(text[start:]):
        if char == ')' and depth == 1:
            return start + i
    msg = f'Unbalanced parenthesis in pattern: {text}'
    raise PatternError(msg)


def iter_atoms(alternative: str, /) -> Iterator[tuple[str, str]]:
    """Yield ``(atom, quantifier)`` pairs of one lexer alternative."""
    i = 0
    n = len(alternative)
    while i < n:
        char = alternative[i]
        if char.isspace():
            i += 1
            continue

        start = i
        if char == '~':
            i += 1
            while i < n and alternative[i].isspace():
                i += 1
            if i >= n:
                msg = 'Negation without an operand'
                raise PatternError(msg)
            inner, _ = next(iter_atoms(alternative[i:]))
            i += len(inner)
        elif char == "'":
            i = skip_literal(alternative, i)
            if match := _RANGE_RE.match(alternative, i):
                i = skip_literal(alternative, match.end() - 1)
        elif char == '[':
            i = skip_char_class(alternative, i)
        elif char == '(':
            i = _matching_paren(alternative, i) + 1
        elif char == '.':
            i += 1
        elif match := _IDENTIFIER_RE.match(alternative, i):
            i = match.end()
        elif char == '{':
            msg = 'Embedded actions and predicates are not supported'
            raise PatternError(msg)
        else:
            msg = f'Unsupported syntax near {alternative[i : i + 12]!r}'
            raise PatternError(msg)

        atom = alternative[start:i]
        while i < n and alternative[i].isspace():
            i += 1
        quantifier = ''
        if i < n and alternative[i] in '?*+':
            quantifier = alternative[i]
            i += 1
            if i < n and alternative[i] == '?':
                quantifier += '?'
                i += 1
        yield atom, quantifier


class _PatternTranslator:
    def __init__(self, fragments: Mapping[str, str] | None) -> None:
        self.fragments = fragments or {}
        self.stack: list[str] = []

    def translate(self, text: str) -> str:
        return '|'.join(
            self.translate_sequence(alternative)
            for alternative in split_alternatives(text)
        )

    def translate_sequence(self, alternative: str) -> str:
        parts: list[str] = []
        for atom, quantifier in iter_atoms(alternative):
            regex = self.translate_atom(atom)
            if quantifier and not regex.startswith(('(?:', '[')) and len(regex) > 1:
                regex = f'(?:{regex})'
            parts.append(regex + quantifier)
        return ''.join(parts)

    def translate_atom(self, atom: str) -> str:  # noqa: PLR0911
        match atom[0]:
            case '(':
                return f'(?:{self.translate(atom[1:-1])})'
            case "'":
                if _is_range(atom):
                    return f'[{_range_body(atom)}]'
                return re.escape(_unescape(atom[1:-1]))
            case '[':
                body = _translate_class(atom[1:-1])
                return f'[{body}]' if body else '(?!)'
            case '~':
                return f'[^{self.set_body(atom[1:].strip())}]'
            case '.':
                return '.'
            case _:
                return f'(?:{self.inline(atom)})'

    def set_body(self, operand: str) -> str:
        """Class body for a set-like operand of ``~``."""
        atoms = list(iter_atoms(operand))
        if len(atoms) != 1 or atoms[0][1]:
            msg = f'Cannot negate {operand!r}'
            raise PatternError(msg)
        atom = atoms[0][0]
        match atom[0]:
            case '[':
                return _translate_class(atom[1:-1])
            case "'":
                if _is_range(atom):
                    return _range_body(atom)
                text = _unescape(atom[1:-1])
                if len(text) != 1:
                    msg = f'Cannot negate multi-character literal {atom}'
                    raise PatternError(msg)
                return _class_char(text)
            case '(':
                return ''.join(
                    self.set_body(alternative)
                    for alternative in split_alternatives(atom[1:-1])
                )
            case '~' | '.':
                msg = f'Cannot negate {atom!r}'
                raise PatternError(msg)
            case _:
                body = self._enter(atom)
                try:
                    return ''.join(
                        self.set_body(alternative)
                        for alternative in split_alternatives(body)
                    )
                finally:
                    self.stack.pop()

    def _enter(self, name: str) -> str:
        """Push ``name`` onto the inlining stack and return its pattern."""
        if name in self.stack:
            cycle = ' -> '.join([*self.stack, name])
            msg = f'Recursive lexer rule reference: {cycle}'
            raise PatternError(msg)
        if len(self.stack) >= MAX_FRAGMENT_INLINE_DEPTH:
            msg = f'Lexer rule references nest deeper than {MAX_FRAGMENT_INLINE_DEPTH}'
            raise PatternError(msg)
        body = self.fragments.get(name)
        if body is None:
            msg = f'Reference to unknown lexer rule {name!r}'
            raise PatternError(msg)
        self.stack.append(name)
        return body

    def inline(self, name: str) -> str:
        body = self._enter(name)
        try:
            return self.translate(body)
        finally:
            self.stack.pop()


def lexer_patterns(model: GrammarModel, /) -> dict[str, str]:
    """Pattern text of every lexer rule (first definition wins)."""
    patterns: dict[str, str] = {}
    for rule in model.lexer_rules():
        patterns.setdefault(rule.name, rule.pattern)
    return patterns


def translate_pattern(
    text: str, /, *, fragments: Mapping[str, str] | None = None
) -> str:
    """Python regex source equivalent to the lexer pattern ``text``."""
    if not text.strip():
        msg = 'Empty pattern'
        raise PatternError(msg)
    return _PatternTranslator(fragments).translate(text)


def compile_pattern(
    text: str, /, *, fragments: Mapping[str, str] | None = None
) -> CompiledPattern:
    """Compile a lexer pattern into a matcher.

    Args:
        text: Pattern text without the rule header or ``->`` commands.
        fragments: Lexer rule name to pattern text, used to inline references.

    Raises:
        PatternError: The pattern uses an unsupported construct or does not
            translate into a valid regular expression.
    """
    source = translate_pattern(text, fragments=fragments)
    try:
        regex = re.compile(source, re.DOTALL)
    except re.error as e:
        msg = f'Pattern does not compile: {e}'
        raise PatternError(msg) from e
    return CompiledPattern(text, regex)


def try_compile_pattern(
    text: str, /, *, fragments: Mapping[str, str] | None = None
) -> CompiledPattern | PatternError:
    try:
        return compile_pattern(text, fragments=fragments)
    except PatternError as e:
        logger.debug('pattern %r not compiled: %s', text, e)
        return e


def first_chars(
    text: str,
    /,
    *,
    fragments: Mapping[str, str] | None = None,
    _depth: int = 0,
) -> frozenset[str] | None:
    """ASCII characters a match of ``text`` can start with.

    ``None`` means the set could not be determined, for example because the
    pattern can match the empty string or uses an unsupported construct.
    """
    if _depth > MAX_FRAGMENT_INLINE_DEPTH:
        return None
    fragments = fragments or {}
    result: set[str] = set()
    try:
        for alternative in split_alternatives(text):
            chars = _sequence_first_chars(alternative, fragments, _depth)
            if chars is None:
                return None
            result |= chars
    except PatternError:
        return None
    return frozenset(result)


def _sequence_first_chars(
    alternative: str, fragments: Mapping[str, str], depth: int
) -> set[str] | None:
    result: set[str] = set()
    translator = _PatternTranslator(fragments)
    for atom, quantifier in iter_atoms(alternative):
        match atom[0]:
            case "'" if not _is_range(atom):
                literal = _unescape(atom[1:-1])
                chars = {literal[0]} if literal else set()
                if not literal:
                    continue
            case '(':
                found = first_chars(atom[1:-1], fragments=fragments, _depth=depth + 1)
                if found is None:
                    return None
                chars = set(found)
            case '.':
                chars = set(_ASCII)
            case "'" | '[' | '~':
                regex = re.compile(translator.translate_atom(atom), re.DOTALL)
                chars = {char for char in _ASCII if regex.fullmatch(char)}
            case _:
                body = fragments.get(atom)
                if body is None:
                    return None
                found = first_chars(body, fragments=fragments, _depth=depth + 1)
                if found is None:
                    return None
                chars = set(found)

        result |= chars
        if quantifier[:1] not in {'?', '*'}:
            return result
    return None
