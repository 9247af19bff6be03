"""Match a token sequence against the structure of a single parser rule.

Lexer-rule and literal elements must match the current token exactly.
References to other parser rules are not expanded; each one is treated as a
black box that consumes one token (or, under ``*``/``+``, every token up to
the next one the following element accepts). Results that depend on that
assumption carry ``medium`` confidence.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Final

from g4_grammar.grammar_utils import (
    clean_parser_body,
    rule_body,
    skip_literal,
    split_lexer_commands,
    unescape_literal,
)
from g4_grammar.model import Element, RuleStructure, Token, rule_kind
from g4_grammar.tokenizer import tokenize

if TYPE_CHECKING:
    from collections.abc import Sequence

    from g4_grammar._types import Confidence, Modifier, RuleTestResultDict
    from g4_grammar.model import Alternative, GrammarModel

logger = logging.getLogger(__name__)

_NAME_RE: Final = re.compile(r'~?\s*[A-Za-z_]\w*')
_MODIFIERS: Final[dict[str, Modifier]] = {'?': '?', '*': '*', '+': '+'}


@dataclass(slots=True)
class RuleTestResult:
    success: bool
    matched: bool
    confidence: Confidence
    message: str
    partial: bool = False
    expected_tokens: list[str] = field(default_factory=list)
    matched_alternative: int | None = None

    def to_json(self) -> RuleTestResultDict:
        result: RuleTestResultDict = {
            'success': self.success,
            'matched': self.matched,
            'confidence': self.confidence,
            'message': self.message,
            'partial': self.partial,
            'expected_tokens': list(self.expected_tokens),
        }
        if self.matched_alternative is not None:
            result['matched_alternative'] = self.matched_alternative
        return result


class _StructureParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def alternatives(self) -> tuple[Alternative, ...]:
        alternatives: list[Alternative] = []
        current: list[Element] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == ')':
                self.pos += 1
                break
            if char == '|':
                alternatives.append(tuple(current))
                current = []
                self.pos += 1
                continue
            if char in '?*+':
                self.pos += 1
                if current and current[-1].modifier is None:
                    current[-1] = replace(current[-1], modifier=_MODIFIERS[char])
                continue
            element = self.element()
            if element is not None:
                current.append(element)
        alternatives.append(tuple(current))
        return tuple(alternatives)

    def element(self) -> Element | None:
        char = self.text[self.pos]
        if char == '(':
            self.pos += 1
            return Element(self.alternatives())
        if char == "'":
            end = skip_literal(self.text, self.pos)
            content = self.text[self.pos : end]
            self.pos = end
            return Element(content)
        if char == '.':
            self.pos += 1
            return Element('.')
        if match := _NAME_RE.match(self.text, self.pos):
            self.pos = match.end()
            return Element(re.sub(r'\s+', '', match[0]))
        if char == '~' and self.text[self.pos + 1 :].lstrip().startswith('('):
            self.pos = self.text.index('(', self.pos) + 1
            return Element(self.alternatives(), negated=True)
        if char == '~' and self.text[self.pos + 1 :].lstrip().startswith("'"):
            start = self.pos
            self.pos = self.text.index("'", self.pos)
            self.pos = skip_literal(self.text, self.pos)
            return Element('~' + self.text[start + 1 : self.pos].strip())
        self.pos += 1
        return None


def parse_rule_structure(definition: str, /) -> RuleStructure:
    """Parse a rule definition (or bare body) into alternatives of elements.

    Actions, predicates, labels, element options and lexer commands are
    dropped; a trailing ``?``, ``*`` or ``+`` binds to the preceding literal,
    name or parenthesized group.
    """
    pattern, _ = split_lexer_commands(rule_body(definition))
    return RuleStructure(_StructureParser(clean_parser_body(pattern)).alternatives())


def _literal_text(content: str, /) -> str:
    return unescape_literal(content[1:-1])


def _token_matches(content: str, token: Token) -> bool:
    """Whether a terminal element accepts ``token``."""
    if content == '.':
        return True
    if content.startswith('~'):
        return not _token_matches(content[1:], token)
    if content.startswith("'"):
        return token.type == content or token.value == _literal_text(content)
    return token.type == content


def _set_excludes(element: Element, token: Token) -> bool:
    """Whether one member of the negated set ``element`` matches ``token``."""
    return any(
        len(alternative) == 1
        and isinstance(member := alternative[0].content, str)
        and _token_matches(member, token)
        for alternative in element.alternatives
    )


def is_rule_reference(element: Element, /) -> bool:
    """Whether ``element`` names a parser rule."""
    content = element.content
    return (
        isinstance(content, str)
        and content[:1] not in {"'", '.', '~'}
        and rule_kind(content) == 'parser'
    )


@dataclass(slots=True)
class _Attempt:
    ok: bool
    position: int
    black_box: bool = False
    failed_at: str | None = None


class _SequenceMatcher:
    def __init__(self, tokens: Sequence[Token]) -> None:
        self.tokens = tokens

    def accepts(self, element: Element | None, pos: int) -> bool:
        """Cheap check whether ``element`` could start at ``pos``."""
        if element is None or pos >= len(self.tokens):
            return False
        content = element.content
        if element.negated:
            return not _set_excludes(element, self.tokens[pos])
        if isinstance(content, tuple):
            return any(
                alternative and self.accepts(alternative[0], pos)
                for alternative in content
            )
        if is_rule_reference(element):
            return False
        return _token_matches(content, self.tokens[pos])

    def sequence(
        self, elements: Alternative, pos: int, follower: Element | None = None
    ) -> _Attempt:
        black_box = False
        for index, element in enumerate(elements):
            following = elements[index + 1] if index + 1 < len(elements) else follower
            start = pos
            if element.content == 'EOF' and pos == len(self.tokens):
                continue
            count = 0
            while pos < len(self.tokens) and (count == 0 or element.is_repeating):
                if (
                    count > 0
                    and is_rule_reference(element)
                    and self.accepts(following, pos)
                ):
                    break
                step, used_black_box = self.once(element, pos, following)
                black_box = black_box or used_black_box
                if step is None:
                    break
                pos += step
                count += 1
                if step == 0:
                    break

            if count == 0 and not element.is_nullable:
                return _Attempt(False, start, black_box, str(element))
        return _Attempt(True, pos, black_box)

    def once(
        self, element: Element, pos: int, following: Element | None
    ) -> tuple[int | None, bool]:
        """Tokens consumed by one occurrence of ``element`` at ``pos``."""
        content = element.content
        if element.negated:
            return (None if _set_excludes(element, self.tokens[pos]) else 1), False
        if isinstance(content, tuple):
            best: _Attempt | None = None
            for alternative in content:
                attempt = self.sequence(alternative, pos, following)
                if attempt.ok and (best is None or attempt.position > best.position):
                    best = attempt
            if best is None:
                return None, False
            return best.position - pos, best.black_box

        if is_rule_reference(element):
            if element.is_optional and self.accepts(following, pos):
                return None, True
            return 1, True

        if _token_matches(content, self.tokens[pos]):
            return 1, False
        return None, False


def _visible(tokens: Sequence[Token | str]) -> list[Token]:
    visible: list[Token] = []
    for position, token in enumerate(tokens):
        if isinstance(token, str):
            visible.append(Token(token, token, position, position + 1, 1, position))
        elif not token.skipped and token.channel is None:
            visible.append(token)
    return visible


def test_rule(  # noqa: C901, PLR0911
    model: GrammarModel, rule_name: str, tokens: Sequence[Token | str], /
) -> RuleTestResult:
    """Match ``tokens`` against the parser rule ``rule_name``.

    Args:
        model: A scanned grammar.
        rule_name: Name of a parser rule in ``model``.
        tokens: Tokens from ``tokenize``, or bare token type names. Skipped
            and off-channel tokens are ignored.

    Returns:
        ``success`` is ``False`` only when the rule cannot be tested at all.
        ``matched`` is ``True`` when some alternative consumes every token.
    """
    if not rule_name or not re.fullmatch(r'[A-Za-z_]\w*', rule_name):
        return RuleTestResult(False, False, 'low', f'Invalid rule name: {rule_name!r}')

    rule = model.rule(rule_name)
    if rule is None:
        return RuleTestResult(False, False, 'low', f"Rule '{rule_name}' not found")
    if rule.kind == 'lexer':
        return RuleTestResult(
            False,
            False,
            'low',
            f"'{rule_name}' is a lexer rule; only parser rules can be tested",
        )

    structure = parse_rule_structure(rule.definition)
    stream = _visible(tokens)
    matcher = _SequenceMatcher(stream)

    best: tuple[int, _Attempt] | None = None
    expected: dict[str, None] = {}
    any_black_box = False
    for number, alternative in enumerate(structure, start=1):
        attempt = matcher.sequence(alternative, 0)
        any_black_box = any_black_box or attempt.black_box
        if attempt.ok and attempt.position == len(stream):
            confidence: Confidence = 'medium' if attempt.black_box else 'high'
            message = f"Input matches rule '{rule_name}' (alternative {number})"
            if attempt.black_box:
                message += '; parser-rule references were assumed to match'
            logger.debug('rule %s matched by alternative %d', rule_name, number)
            return RuleTestResult(
                True, True, confidence, message, matched_alternative=number
            )

        if attempt.failed_at is not None:
            expected.setdefault(attempt.failed_at, None)
        if best is None or attempt.position > best[1].position:
            best = (number, attempt)

    confidence = 'medium' if any_black_box else 'high'
    if best is not None and best[1].position > 0:
        number, attempt = best
        message = (
            f'Partial match: alternative {number} consumed '
            f'{attempt.position} of {len(stream)} tokens'
        )
        return RuleTestResult(
            True, False, confidence, message, True, list(expected), number
        )

    if not stream:
        message = f"Rule '{rule_name}' does not accept empty input"
    else:
        message = f'No alternatives matched. Expected: {", ".join(expected)}'
    return RuleTestResult(True, False, confidence, message, False, list(expected))


def test_rule_input(
    model: GrammarModel, rule_name: str, text: str, /
) -> RuleTestResult:
    """Tokenize ``text`` with the grammar's lexer and match the result."""
    result = tokenize(model, text)
    if result.errors:
        return RuleTestResult(
            True,
            False,
            'high',
            f'Input could not be tokenized: {result.errors[0].message}',
        )
    return test_rule(model, rule_name, result.visible_tokens)
