"""Maximal-munch tokenizer simulation.

At every offset, every live matcher is tried and the longest match wins. On
equal length the earlier candidate is kept; implicit parser literals come
first, then lexer rules in declaration order. Only rules of the default mode
take part unless the caller names the rules to use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from g4_grammar.common import DEFAULT_MODE
from g4_grammar.grammar_utils import (
    literal_only,
    raw_literals,
    remove_opaque,
    skip_action,
    skip_char_class,
    skip_literal,
    unescape_literal,
)
from g4_grammar.model import Token
from g4_grammar.pattern_compiler import (
    CompiledPattern,
    PatternError,
    compile_pattern,
    lexer_patterns,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from g4_grammar._types import TokenizeErrorDict, TokenizeResultDict
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

_DISPLAY_ESCAPES = {'\n': '\\n', '\r': '\\r', '\t': '\\t'}


@dataclass(slots=True, frozen=True)
class TokenizeError:
    position: int
    char: str
    line: int
    column: int
    message: str

    def to_json(self) -> TokenizeErrorDict:
        return {
            'position': self.position,
            'char': self.char,
            'line': self.line,
            'column': self.column,
            'message': self.message,
        }


@dataclass(slots=True)
class TokenizeResult:
    success: bool
    tokens: list[Token]
    errors: list[TokenizeError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    summary: str = ''
    mode: Literal['native', 'simulation'] = 'simulation'

    @property
    def visible_tokens(self) -> list[Token]:
        """Tokens a parser would see: not skipped and on the default channel."""
        return [
            token
            for token in self.tokens
            if not token.skipped and token.channel is None
        ]

    def to_json(self) -> TokenizeResultDict:
        return {
            'success': self.success,
            'mode': self.mode,
            'tokens': [token.to_json() for token in self.tokens],
            'errors': [error.to_json() for error in self.errors],
            'warnings': list(self.warnings),
            'summary': self.summary,
        }


@dataclass(slots=True, frozen=True)
class _Matcher:
    name: str
    pattern: CompiledPattern
    commands: tuple[tuple[str, str | None], ...]


def _parser_literals(model: GrammarModel, /) -> dict[str, str | None]:
    """Raw text of every parser literal, mapped to its decoded text.

    Literals with a malformed escape map to ``None``.
    """
    found: dict[str, str | None] = {}
    for rule in model.parser_rules():
        for raw in raw_literals(remove_opaque(rule.body, keep_literals=True)):
            if raw in found:
                continue
            try:
                found[raw] = unescape_literal(raw, strict=True)
            except ValueError:
                found[raw] = None
    return found


def implicit_literals(model: GrammarModel, /) -> list[str]:
    """Literals used in parser rules that no literal-only lexer rule covers."""
    covered = {
        text
        for rule in model.lexer_rules()
        if not rule.is_fragment
        and (text := literal_only(rule.pattern)) is not None
    }
    seen: dict[str, None] = {}
    for literal in _parser_literals(model).values():
        if literal and literal not in covered:
            seen.setdefault(literal, None)
    return list(seen)


def invalid_literals(model: GrammarModel, /) -> list[str]:
    """Parser literals whose escapes cannot be decoded, as written."""
    return [
        f"'{raw}'"
        for raw, literal in _parser_literals(model).items()
        if literal is None
    ]


def _candidate_rules(
    model: GrammarModel, names: Iterable[str] | None
) -> list[Rule]:
    lexer_rules = [rule for rule in model.lexer_rules() if not rule.is_fragment]
    if names is None:
        return [rule for rule in lexer_rules if rule.mode in {None, DEFAULT_MODE}]
    selected = set(names)
    return [rule for rule in lexer_rules if rule.name in selected]


def _embedded_code(pattern: str, /) -> str | None:
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "'":
            i = skip_literal(pattern, i)
        elif char == '[':
            i = skip_char_class(pattern, i)
        elif char == '{':
            end = skip_action(pattern, i)
            if pattern[end : end + 1] == '?':
                return 'semantic predicates'
            return 'embedded actions'
        else:
            i += 1
    return None


def _display(char: str, /) -> str:
    return _DISPLAY_ESCAPES.get(char, char)


def _advance(value: str, line: int, column: int) -> tuple[int, int]:
    newlines = value.count('\n')
    if newlines == 0:
        return line, column + len(value)
    return line + newlines, len(value) - value.rfind('\n') - 1


def tokenize(  # noqa: C901, PLR0912, PLR0915
    model: GrammarModel,
    text: str,
    /,
    *,
    rules: Iterable[str] | None = None,
) -> TokenizeResult:
    """Simulate the lexer of ``model`` over ``text``.

    Args:
        model: A scanned grammar.
        text: Input to tokenize.
        rules: Restrict matching to these lexer rules, in any mode.

    Returns:
        The token sequence plus per-character errors, warnings about rules
        that could not be simulated, and a one-line summary.
    """
    warnings: list[str] = []
    selected = list(rules) if rules is not None else None

    if selected is None and len(model.modes) > 1:
        warnings.append(
            'Lexer modes are not simulated; only DEFAULT_MODE rules are used'
        )

    patterns = lexer_patterns(model)
    matchers: list[_Matcher] = []
    for rule in _candidate_rules(model, selected):
        body = rule.pattern
        if (code := _embedded_code(body)) is not None:
            warnings.append(
                f"Rule '{rule.name}' uses {code}, which cannot be simulated"
            )
            continue
        try:
            pattern = compile_pattern(body, fragments=patterns)
        except PatternError as e:
            warnings.append(f"Rule '{rule.name}' cannot be simulated: {e}")
            continue
        matchers.append(_Matcher(rule.name, pattern, tuple(rule.commands)))

    literals = implicit_literals(model)
    warnings.extend(
        f'Literal {literal} has an invalid escape and cannot be simulated'
        for literal in invalid_literals(model)
    )
    logger.debug(
        'tokenizing %d characters with %d rules and %d implicit literals',
        len(text),
        len(matchers),
        len(literals),
    )

    tokens: list[Token] = []
    errors: list[TokenizeError] = []
    pos = 0
    line = 1
    column = 0
    more_start: tuple[int, int, int] | None = None

    while pos < len(text):
        best_length = 0
        best_type = ''
        best_commands: tuple[tuple[str, str | None], ...] = ()

        for literal in literals:
            if len(literal) > best_length and text.startswith(literal, pos):
                best_length = len(literal)
                best_type = f"'{literal}'"
                best_commands = ()

        for matcher in matchers:
            length = matcher.pattern.match_length(text, pos)
            if length is not None and length > best_length:
                best_length = length
                best_type = matcher.name
                best_commands = matcher.commands

        if best_length == 0:
            char = text[pos]
            errors.append(
                TokenizeError(
                    pos,
                    char,
                    line,
                    column,
                    f"Unexpected character '{_display(char)}' at position {pos}",
                )
            )
            line, column = _advance(char, line, column)
            pos += 1
            continue

        end = pos + best_length
        skipped = False
        channel: str | None = None
        token_type = best_type
        is_more = False
        for command, argument in best_commands:
            match command:
                case 'skip':
                    skipped = True
                case 'channel':
                    channel = argument
                case 'type' if argument:
                    token_type = argument
                case 'more':
                    is_more = True
                case _:
                    pass

        start, start_line, start_column = more_start or (pos, line, column)
        line, column = _advance(text[pos:end], line, column)
        pos = end

        if is_more:
            more_start = (start, start_line, start_column)
            continue

        more_start = None
        tokens.append(
            Token(
                token_type,
                text[start:end],
                start,
                end,
                start_line,
                start_column,
                skipped=skipped,
                channel=channel,
            )
        )

    if more_start is not None:
        warnings.append(
            f"Input ended inside a 'more' token starting at {more_start[0]}"
        )

    skipped_count = sum(1 for token in tokens if token.skipped)
    summary = (
        f'Tokenized {len(text)} characters into {len(tokens)} tokens '
        f'({skipped_count} skipped)'
    )
    if errors:
        summary += f' with {len(errors)} errors'

    return TokenizeResult(not errors, tokens, errors, warnings, summary)
