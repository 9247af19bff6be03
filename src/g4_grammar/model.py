from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Literal

from g4_grammar.common import DEFAULT_MODE
from g4_grammar.grammar_utils import rule_body, split_lexer_commands

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from g4_grammar._types import (
        GrammarKind,
        GrammarModelDict,
        IssueDict,
        LexerModeDict,
        Modifier,
        RuleDict,
        RuleKind,
        Severity,
        TokenDict,
    )


def rule_kind(name: str, /) -> RuleKind:
    """Classify an identifier by the case of its first character."""
    return 'lexer' if name[:1].isupper() else 'parser'


def is_lexer_name(name: str, /) -> bool:
    return rule_kind(name) == 'lexer'


@dataclass(slots=True, frozen=True)
class Issue:
    severity: Severity
    message: str
    line_number: int | None = None
    rule_name: str | None = None
    kind: str | None = None
    suggestion: str | None = None

    def to_json(self) -> IssueDict:
        issue: IssueDict = {'severity': self.severity, 'message': self.message}

        if self.line_number is not None:
            issue['line'] = self.line_number

        if self.rule_name is not None:
            issue['rule'] = self.rule_name

        if self.kind is not None:
            issue['kind'] = self.kind

        if self.suggestion is not None:
            issue['suggestion'] = self.suggestion

        return issue


@dataclass(slots=True)
class Rule:
    name: str
    definition: str
    line_number: int
    referenced_rules: tuple[str, ...] = ()
    is_fragment: bool = False
    mode: str | None = None
    end_line_number: int | None = None

    @property
    def kind(self) -> RuleKind:
        return rule_kind(self.name)

    @property
    def body(self) -> str:
        return rule_body(self.definition)

    @property
    def pattern(self) -> str:
        """Lexer pattern: the body without its ``->`` command suffix."""
        return split_lexer_commands(self.body)[0]

    @property
    def commands(self) -> list[tuple[str, str | None]]:
        return split_lexer_commands(self.body)[1]

    @property
    def line_count(self) -> int:
        if self.end_line_number is None:
            return 1
        return self.end_line_number - self.line_number + 1

    def to_json(self) -> RuleDict:
        rule: RuleDict = {
            'name': self.name,
            'kind': self.kind,
            'fragment': self.is_fragment,
            'definition': self.definition,
            'line': self.line_number,
            'references': list(self.referenced_rules),
        }

        if self.mode is not None:
            rule['mode'] = self.mode

        return rule


@dataclass(slots=True)
class LexerMode:
    name: str
    line_number: int = 0
    rules: list[str] = field(default_factory=list)

    def to_json(self) -> LexerModeDict:
        return {'name': self.name, 'line': self.line_number, 'rules': self.rules}


@dataclass
class GrammarModel:
    name: str = ''
    kind: GrammarKind = 'combined'
    rules: list[Rule] = field(default_factory=list)
    modes: list[LexerMode] = field(default_factory=lambda: [LexerMode(DEFAULT_MODE)])
    imports: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    line_count: int = 0

    @cached_property
    def _index(self) -> dict[str, Rule]:
        index: dict[str, Rule] = {}
        for rule in self.rules:
            index.setdefault(rule.name, rule)
        return index

    def rule(self, name: str, /) -> Rule | None:
        """First rule defined under ``name``."""
        return self._index.get(name)

    def rule_names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def lexer_rules(self) -> list[Rule]:
        return [rule for rule in self.rules if rule.kind == 'lexer']

    def parser_rules(self) -> list[Rule]:
        return [rule for rule in self.rules if rule.kind == 'parser']

    def mode(self, name: str, /) -> LexerMode | None:
        return next((mode for mode in self.modes if mode.name == name), None)

    def to_json(self) -> GrammarModelDict:
        model: GrammarModelDict = {
            'name': self.name,
            'kind': self.kind,
            'rules': [rule.to_json() for rule in self.rules],
            'modes': [mode.to_json() for mode in self.modes],
            'imports': list(self.imports),
            'options': dict(self.options),
            'issues': [issue.to_json() for issue in self.issues],
        }

        if self.tokens:
            model['tokens'] = list(self.tokens)

        return model


@dataclass(slots=True, frozen=True)
class Token:
    type: str
    value: str
    start: int
    end: int
    line: int
    column: int
    skipped: bool = False
    channel: str | None = None

    def to_json(self) -> TokenDict:
        token: TokenDict = {
            'type': self.type,
            'value': self.value,
            'start': self.start,
            'end': self.end,
            'line': self.line,
            'column': self.column,
            'skipped': self.skipped,
        }

        if self.channel is not None:
            token['channel'] = self.channel

        return token


type Alternative = tuple[Element, ...]


@dataclass(slots=True, frozen=True)
class Element:
    """One item of an alternative: a name, a literal, or a nested group.

    A negated group (``~(A | B)``) matches any single token that none of its
    alternatives match.
    """

    content: str | tuple[Alternative, ...]
    modifier: Modifier | None = None
    negated: bool = False

    @property
    def is_optional(self) -> bool:
        return self.modifier in {'?', '*'}

    @property
    def is_repeating(self) -> bool:
        return self.modifier in {'*', '+'}

    @property
    def is_nullable(self) -> bool:
        """Whether the element can match without consuming input."""
        if self.is_optional:
            return True
        if self.negated:
            return False
        return any(
            all(element.is_nullable for element in alternative)
            for alternative in self.alternatives
        )

    @property
    def is_group(self) -> bool:
        return isinstance(self.content, tuple) and not self.negated

    @property
    def alternatives(self) -> tuple[Alternative, ...]:
        return self.content if isinstance(self.content, tuple) else ()

    def __str__(self) -> str:
        if isinstance(self.content, tuple):
            inner = ' | '.join(
                ' '.join(str(element) for element in alternative)
                for alternative in self.content
            )
            text = f'{"~" if self.negated else ""}({inner})'
        else:
            text = self.content
        return f'{text}{self.modifier or ""}'


@dataclass(slots=True, frozen=True)
class RuleStructure:
    alternatives: tuple[Alternative, ...]

    def __iter__(self) -> Iterator[Alternative]:
        return iter(self.alternatives)

    def __len__(self) -> int:
        return len(self.alternatives)


type FindMode = Literal['exact', 'regex', 'wildcard', 'partial']


@dataclass(slots=True)
class FindResult:
    matches: list[Rule]
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.matches)


def find_rules(
    model: GrammarModel, pattern: str, /, *, mode: FindMode = 'exact'
) -> FindResult:
    """Look rules up by name using one of several matching modes."""
    rules: Sequence[Rule] = model.rules
    match mode:
        case 'exact':
            return FindResult([rule for rule in rules if rule.name == pattern])
        case 'regex':
            try:
                regex = re.compile(pattern)
            except re.error as e:
                return FindResult([], error=f'Invalid regular expression: {e}')
            return FindResult([rule for rule in rules if regex.search(rule.name)])
        case 'wildcard':
            translated = ''.join(
                '.*' if char == '*' else '.' if char == '?' else re.escape(char)
                for char in pattern
            )
            regex = re.compile(f'^{translated}$')
            return FindResult([rule for rule in rules if regex.match(rule.name)])
        case 'partial':
            needle = pattern.lower()
            return FindResult([rule for rule in rules if needle in rule.name.lower()])
        case _:
            return FindResult([], error=f'Unknown match mode: {mode}')
