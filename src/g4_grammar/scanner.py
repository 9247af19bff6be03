"""Recover a ``GrammarModel`` from raw grammar source.

The scanner is a line-oriented state machine. Comments are removed one line at
a time with a single "inside a block comment" flag, which is approximate but
good enough for grammar files. Each step of the driver returns how many lines
it consumed; when a statement ends part-way through a line the remainder is
written back into that line so the next step sees it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Final

from g4_grammar.common import DEFAULT_MODE, GRAMMAR_KEYWORDS, MAX_RULE_LINES
from g4_grammar.grammar_utils import (
    clean_parser_body,
    extract_identifiers,
    find_block_end,
    rule_body,
    skip_char_class,
    skip_literal,
    split_lexer_commands,
    split_rule_header,
    strip_comment,
    strip_literals,
)
from g4_grammar.model import GrammarModel, Issue, LexerMode, Rule, rule_kind
from g4_grammar.validation import validate

if TYPE_CHECKING:
    from g4_grammar._types import GrammarKind

logger = logging.getLogger(__name__)

_GRAMMAR_RE: Final = re.compile(
    r'^(?:(lexer|parser)\s+)?grammar\s+([A-Za-z_]\w*)\s*;'
)
_IMPORT_RE: Final = re.compile(r'^import\s+([^;]*);')
_MODE_RE: Final = re.compile(r'^mode\s+([A-Za-z_]\w*)\s*;')
_BLOCK_RE: Final = re.compile(r'^(options|tokens|channels)\s*(?=\{)')
_NAMED_ACTION_RE: Final = re.compile(
    r'^(?:@[\w:]+|catch\s*\[[^\]]*\]|finally)\s*(?=\{)'
)
_OPTION_RE: Final = re.compile(r'([A-Za-z_]\w*)\s*=\s*([^;]+?)\s*;')
_RULE_START_RE: Final = re.compile(
    r'^(?:fragment\s+)?[A-Za-z_]\w*\s*'
    r'(?:\[|returns\b|locals\b|throws\b|options\b|@|:)'
)
_PENDING_RE: Final = re.compile(
    r'^(?:fragment\s+)?(?P<name>[A-Za-z_]\w*)'
    r'(?:\s*\[[^\]]*\])?(?:\s+(?:returns|locals|throws)\b.*)?$'
)
_HEADER_CLAUSE_RE: Final = re.compile(r'^(?:returns|locals|throws|options|@\w+)\b')
_DECLARATION_WORDS: Final = frozenset(
    {'grammar', 'lexer', 'parser', 'import', 'options', 'tokens', 'channels', 'mode'}
)


class ScanState(Enum):
    OUTSIDE = auto()
    PENDING_NAME = auto()
    INSIDE_RULE = auto()


def extract_references(definition: str, /) -> tuple[str, ...]:
    """Identifiers referenced from a rule body, in first-use order.

    Literals, sets, actions, labels and lexer commands are removed first;
    grammar keywords are never references.
    """
    pattern, _ = split_lexer_commands(rule_body(definition))
    text = strip_literals(clean_parser_body(pattern))
    seen: dict[str, None] = {}
    for name in extract_identifiers(text):
        if name not in GRAMMAR_KEYWORDS:
            seen.setdefault(name, None)
    return tuple(seen)


def _find_terminator(line: str, brace_depth: int, /) -> tuple[int | None, int]:
    """Locate a rule-ending ``;`` in ``line`` given the open action depth."""
    i = 0
    while i < len(line):
        char = line[i]
        if char in '\'"':
            i = skip_literal(line, i)
            continue
        if brace_depth == 0 and char == '[':
            i = skip_char_class(line, i)
            continue
        if char == '{':
            brace_depth += 1
        elif char == '}':
            brace_depth = max(0, brace_depth - 1)
        elif char == ';' and brace_depth == 0:
            return i, brace_depth
        i += 1
    return None, brace_depth


@dataclass
class _Scanner:
    lines: list[str]
    state: ScanState = ScanState.OUTSIDE
    name: str = ''
    kind: GrammarKind = 'combined'
    rules: list[Rule] = field(default_factory=list)
    modes: list[LexerMode] = field(default_factory=lambda: [LexerMode(DEFAULT_MODE)])
    imports: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    tokens: list[str] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    pending_start: int = 0
    pending_name: str = ''

    def run(self) -> None:
        index = 0
        while index < len(self.lines):
            match self.state:
                case ScanState.OUTSIDE:
                    index += self._step_outside(index)
                case ScanState.PENDING_NAME:
                    index += self._step_pending(index)
                case ScanState.INSIDE_RULE:
                    index += self._step_rule(index)

        if self.state is ScanState.PENDING_NAME:
            self._warn_pending()

    def _requeue(self, index: int, rest: str) -> int:
        """Consume the current line, or keep its unread ``rest`` for later."""
        if rest.strip():
            self.lines[index] = rest
            return 0
        return 1

    def _step_outside(self, index: int) -> int:  # noqa: PLR0911
        text = self.lines[index].strip()
        if not text:
            return 1

        if match := _GRAMMAR_RE.match(text):
            self.kind = match[1] or 'combined'
            self.name = match[2]
            return self._requeue(index, text[match.end() :])

        if match := _IMPORT_RE.match(text):
            for part in match[1].split(','):
                name = part.split('=')[-1].strip()
                if name:
                    self.imports.append(name)
            return self._requeue(index, text[match.end() :])

        if match := _MODE_RE.match(text):
            self.modes.append(LexerMode(match[1], index + 1))
            return self._requeue(index, text[match.end() :])

        if match := _BLOCK_RE.match(text):
            return self._read_block(index, match[1])

        if _NAMED_ACTION_RE.match(text):
            return self._read_block(index, None)

        first_word = text.split(None, 1)[0].rstrip(';{')
        if first_word not in _DECLARATION_WORDS:
            if _RULE_START_RE.match(text):
                self.state = ScanState.INSIDE_RULE
                self.pending_start = index
                return 0

            if match := _PENDING_RE.match(text):
                self.state = ScanState.PENDING_NAME
                self.pending_start = index
                self.pending_name = match['name']
                return 1

        self.issues.append(
            Issue(
                'warning',
                f'Unrecognized content: {text[:60]}',
                line_number=index + 1,
                kind='unparsed-content',
            )
        )
        return 1

    def _read_block(self, index: int, block: str | None) -> int:
        """Consume a ``{...}`` block that may span several lines."""
        text = self.lines[index].strip()
        open_at = text.index('{')
        collected = text
        last = index
        end = find_block_end(collected, open_at)
        while end is None and last + 1 < len(self.lines):
            if last - index >= MAX_RULE_LINES:
                break
            last += 1
            collected = f'{collected}\n{self.lines[last]}'
            end = find_block_end(collected, open_at)

        if end is None:
            self.issues.append(
                Issue(
                    'error',
                    'Unterminated block: missing closing brace',
                    line_number=index + 1,
                    kind='unterminated-block',
                )
            )
            return last - index + 1

        content = collected[open_at + 1 : end - 1]
        match block:
            case 'options':
                for option in _OPTION_RE.finditer(content):
                    self.options[option[1]] = option[2].strip()
            case 'tokens':
                self.tokens.extend(extract_identifiers(strip_literals(content)))
            case _:
                pass

        rest = collected[end:].lstrip(';')
        consumed = last - index
        if rest.strip():
            self.lines[last] = rest
            return consumed
        return consumed + 1

    def _step_pending(self, index: int) -> int:
        text = self.lines[index].strip()
        if not text or _HEADER_CLAUSE_RE.match(text):
            return 1

        bare_fragment = self.pending_name == 'fragment'
        if text.startswith(':') or (bare_fragment and _RULE_START_RE.match(text)):
            self.state = ScanState.INSIDE_RULE
            return self._capture(index, self.pending_start)

        if bare_fragment and (match := _PENDING_RE.match(text)):
            self.pending_name = match['name']
            return 1

        self.state = ScanState.OUTSIDE

        self._warn_pending()
        return 0

    def _warn_pending(self) -> None:
        self.issues.append(
            Issue(
                'warning',
                f"Expected ':' after rule name '{self.pending_name}'",
                line_number=self.pending_start + 1,
                rule_name=self.pending_name,
                kind='malformed-rule',
            )
        )
        self.state = ScanState.OUTSIDE

    def _step_rule(self, index: int) -> int:
        return self._capture(index, index)

    def _capture(self, index: int, start: int) -> int:
        """Accumulate a rule from ``start`` until its ``;``.

        Lines before ``index`` were already consumed while the name was
        pending; the return value counts lines consumed from ``index``.
        """
        buffer = [self.lines[i].rstrip() for i in range(start, index)]
        depth = 0
        current = index
        while current < len(self.lines):
            line = self.lines[current]
            end, depth = _find_terminator(line, depth)
            if end is not None:
                buffer.append(line[: end + 1].rstrip())
                self._add_rule('\n'.join(buffer).strip(), start)
                self.state = ScanState.OUTSIDE
                rest = line[end + 1 :]
                if rest.strip():
                    self.lines[current] = rest
                    return current - index
                return current - index + 1

            buffer.append(line.rstrip())
            current += 1
            if current - start >= MAX_RULE_LINES:
                break

        header = split_rule_header('\n'.join(buffer))
        name = header[0] if header is not None else buffer[0].split()[0]
        if current - start >= MAX_RULE_LINES:
            message = (
                f"Rule '{name}' appears to be missing a semicolon "
                f'or is extremely long (>{MAX_RULE_LINES} lines)'
            )
        else:
            message = f"Rule '{name}' is missing a terminating ';'"
        self.issues.append(
            Issue(
                'error',
                message,
                line_number=start + 1,
                rule_name=name,
                kind='missing-terminator',
            )
        )
        self._add_rule('\n'.join(buffer).rstrip() + ';', start)
        self.state = ScanState.OUTSIDE
        return current - index

    def _add_rule(self, definition: str, start: int) -> None:
        header = split_rule_header(definition)
        if header is None:
            self.issues.append(
                Issue(
                    'error',
                    f'Malformed rule definition: {definition.splitlines()[0][:60]}',
                    line_number=start + 1,
                    kind='malformed-rule',
                )
            )
            return

        name = header[0]
        is_fragment = re.match(r'\s*fragment\s', definition) is not None
        mode = None
        if rule_kind(name) == 'lexer':
            mode = self.modes[-1].name
            self.modes[-1].rules.append(name)

        self.rules.append(
            Rule(
                name,
                definition,
                start + 1,
                extract_references(definition),
                is_fragment=is_fragment,
                mode=mode,
                end_line_number=start + definition.count('\n') + 1,
            )
        )


def scan(source: str, /) -> GrammarModel:
    """Build a ``GrammarModel`` from grammar source text.

    Never raises for malformed grammar content; problems are recorded on
    ``GrammarModel.issues`` together with the validation findings.

    Raises:
        TypeError: If ``source`` is not a string.
    """
    if not isinstance(source, str):
        msg = f'grammar source must be str, not {type(source).__name__}'
        raise TypeError(msg)

    raw_lines = source.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    code_lines: list[str] = []
    in_block = False
    for line in raw_lines:
        code, in_block = strip_comment(line, in_block)
        code_lines.append(code)

    scanner = _Scanner(code_lines)
    scanner.run()

    model = GrammarModel(
        scanner.name,
        scanner.kind,
        scanner.rules,
        scanner.modes,
        scanner.imports,
        scanner.options,
        scanner.issues,
        scanner.tokens,
        len(raw_lines),
    )
    model.issues.extend(validate(model))

    logger.debug(
        'scanned grammar %r: %d rules, %d modes, %d issues',
        model.name,
        len(model.rules),
        len(model.modes),
        len(model.issues),
    )
    return model
