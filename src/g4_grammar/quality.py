"""Grammar quality checks, issue grouping and grammar comparison."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Self

from g4_grammar.ambiguity import IssueSummary
from g4_grammar.common import RESERVED_RULE_NAMES
from g4_grammar.grammar_utils import (
    find_literals,
    literal_only,
    remove_opaque,
    strip_comments,
)
from g4_grammar.metrics import alternative_count, rule_complexity
from g4_grammar.model import Issue

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from g4_grammar._types import (
        GrammarComparisonDict,
        IncompleteParsingDict,
        IssueAggregateDict,
        IssueGroupDict,
        RuleCountsDict,
        StyleReportDict,
        SuspiciousQuantifierDict,
        TokenSuggestionDict,
    )
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

MAX_RULES: Final = 100
MAX_ALTERNATIVES: Final = 10
MAX_COMPLEXITY: Final = 20
MAX_LINE_LENGTH: Final = 120
MANY_ISSUES: Final = 5
SHORT_RULE: Final = 50
_TOP_ITEMS: Final = 10

_UNDEFINED_RE: Final = re.compile(r'Reference to undefined rule: (\w+)')
_OPTIONAL_RUN_RE: Final = re.compile(r'(?:\b\w+\s*\?(?![?*+])\s*){3,}')
_OPTIONAL_REF_RE: Final = re.compile(r'\b(\w+)\s*\?(?![?*+])')
_COLLECTION_MARKERS: Final = ('_rule', '_setting', '_property')
_NEGATED_RUN_RE: Final = re.compile(r'~\[.*\]\+')
_REST_OF_LINE: Final = 'null_rest_of_line'

# (name test, suggested pattern, reasoning); first match wins.
_TOKEN_TEMPLATES: Final = (
    (
        lambda name: 'USERNAME' in name or 'USER' in name,
        '[a-zA-Z][a-zA-Z0-9_@.-]*',
        'Usernames may include @ and dots',
    ),
    (
        lambda name: 'ADDRESS' in name,
        '[a-zA-Z0-9][a-zA-Z0-9._-]*',
        'Addresses can include dots and dashes',
    ),
    (
        lambda name: 'INTERFACE' in name,
        '[a-zA-Z][a-zA-Z0-9_/-]*',
        'Interface names often include slashes',
    ),
    (
        lambda name: 'EVENT' in name,
        '[a-zA-Z][a-zA-Z0-9_-]*',
        'Event names are usually alphanumeric',
    ),
    (
        lambda name: name.endswith('_REGEX'),
        '~[ \\t\\r\\n]+',
        'Regular expressions usually run up to the next whitespace',
    ),
    (
        lambda name: name.endswith('_TYPE'),
        '[a-zA-Z][a-zA-Z0-9_-]*',
        'Type names are usually alphanumeric with dashes',
    ),
    (
        lambda name: name.endswith(('_ID', '_IDENTIFIER')),
        '[a-zA-Z_][a-zA-Z0-9_]*',
        'Identifiers start with a letter or underscore',
    ),
)
_DEFAULT_TOKEN_PATTERN: Final = '[a-zA-Z_][a-zA-Z0-9_-]*'


@dataclass(slots=True)
class IssueGroup:
    category: str
    count: int
    unique_items: int
    top_items: list[tuple[str, int]] = field(default_factory=list)
    suggestion: str | None = None

    def to_json(self) -> IssueGroupDict:
        group: IssueGroupDict = {
            'category': self.category,
            'count': self.count,
            'unique_items': self.unique_items,
            'top_items': [
                {'name': name, 'count': count} for name, count in self.top_items
            ],
        }
        if self.suggestion is not None:
            group['suggestion'] = self.suggestion
        return group


@dataclass(slots=True)
class IssueAggregate:
    summary: str
    groups: list[IssueGroup] = field(default_factory=list)

    def to_json(self) -> IssueAggregateDict:
        return {
            'summary': self.summary,
            'groups': [group.to_json() for group in self.groups],
        }


@dataclass(slots=True, frozen=True)
class SuspiciousQuantifier:
    rule: str
    line: int
    pattern: str
    suggestion: str
    reasoning: str

    def to_issue(self) -> Issue:
        return Issue(
            'warning',
            f"Suspicious quantifier in rule '{self.rule}': {self.pattern}",
            line_number=self.line,
            rule_name=self.rule,
            kind='suspicious-quantifier',
            suggestion=self.suggestion,
        )

    def to_json(self) -> SuspiciousQuantifierDict:
        return {
            'rule': self.rule,
            'line': self.line,
            'pattern': self.pattern,
            'suggestion': self.suggestion,
            'reasoning': self.reasoning,
        }


@dataclass(slots=True, frozen=True)
class TokenSuggestion:
    name: str
    pattern: str
    reasoning: str

    def to_json(self) -> TokenSuggestionDict:
        return {'name': self.name, 'pattern': self.pattern, 'reasoning': self.reasoning}


@dataclass(slots=True)
class StyleReport:
    score: int
    issues: list[Issue] = field(default_factory=list)
    summary: IssueSummary = field(default_factory=IssueSummary)

    def to_json(self) -> StyleReportDict:
        return {
            'score': self.score,
            'issues': [issue.to_json() for issue in self.issues],
            'summary': self.summary.to_json(),
        }


@dataclass(slots=True, frozen=True)
class IncompleteParsing:
    rule: str
    line: int
    pattern: str
    suggestion: str

    def to_issue(self) -> Issue:
        return Issue(
            'warning',
            f"Rule '{self.rule}' may discard input: {self.pattern}",
            line_number=self.line,
            rule_name=self.rule,
            kind='incomplete-parsing',
            suggestion=self.suggestion,
        )

    def to_json(self) -> IncompleteParsingDict:
        return {
            'rule': self.rule,
            'line': self.line,
            'pattern': self.pattern,
            'suggestion': self.suggestion,
        }


@dataclass(slots=True, frozen=True)
class RuleCounts:
    name: str
    parser_rules: int
    lexer_rules: int

    @classmethod
    def of(cls, model: GrammarModel, /) -> Self:
        return cls(model.name, len(model.parser_rules()), len(model.lexer_rules()))

    @property
    def total_rules(self) -> int:
        return self.parser_rules + self.lexer_rules

    def to_json(self) -> RuleCountsDict:
        return {
            'name': self.name,
            'parser_rules': self.parser_rules,
            'lexer_rules': self.lexer_rules,
            'total_rules': self.total_rules,
        }


@dataclass(slots=True)
class GrammarComparison:
    first: RuleCounts
    second: RuleCounts
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)

    @property
    def identical(self) -> bool:
        return not (self.added or self.removed or self.modified)

    @property
    def summary(self) -> str:
        if self.identical:
            return 'The grammars define the same rules'
        return (
            f'{len(self.added)} added, {len(self.removed)} removed, '
            f'{len(self.modified)} modified'
        )

    def to_json(self) -> GrammarComparisonDict:
        return {
            'first': self.first.to_json(),
            'second': self.second.to_json(),
            'added': list(self.added),
            'removed': list(self.removed),
            'modified': list(self.modified),
            'summary': self.summary,
        }


def aggregate_issues(issues: Iterable[Issue], /) -> IssueAggregate:
    """Group ``issues`` into actionable categories.

    Undefined references are counted per missing name, suspicious
    quantifiers per rule; everything else is listed under "Other Issues".
    """
    issues = list(issues)
    undefined: Counter[str] = Counter()
    quantifier_rules: list[str] = []
    other: list[Issue] = []

    for issue in issues:
        if issue.kind == 'undefined-reference' and (
            match := _UNDEFINED_RE.search(issue.message)
        ):
            undefined[match[1]] += 1
        elif issue.kind == 'suspicious-quantifier':
            quantifier_rules.append(issue.rule_name or 'unknown')
        else:
            other.append(issue)

    groups: list[IssueGroup] = []
    if undefined:
        top = undefined.most_common(_TOP_ITEMS)
        groups.append(
            IssueGroup(
                'Undefined Token References',
                sum(undefined.values()),
                len(undefined),
                top,
                f'Add {len(undefined)} missing lexer tokens. Top priority: '
                + ', '.join(name for name, _ in top[:3]),
            )
        )
    if quantifier_rules:
        unique = list(dict.fromkeys(quantifier_rules))
        groups.append(
            IssueGroup(
                'Suspicious Quantifiers',
                len(quantifier_rules),
                len(unique),
                [(name, 1) for name in unique[:_TOP_ITEMS]],
                f"Review {len(unique)} rules using '?' that may need '*' for "
                'multiple occurrences',
            )
        )
    if other:
        groups.append(
            IssueGroup(
                'Other Issues',
                len(other),
                len(other),
                [(issue.message, 1) for issue in other[:5]],
            )
        )

    priority = next(
        (group.suggestion for group in groups if group.suggestion),
        'No major issues',
    )
    summary = (
        f'Total: {len(issues)} issues across {len(groups)} categories. '
        f'Priority: {priority}'
    )
    return IssueAggregate(summary, groups)


def _rule_smells(rule: Rule, /) -> Iterator[SuspiciousQuantifier]:
    text = remove_opaque(rule.body)

    if match := _OPTIONAL_RUN_RE.search(text):
        yield SuspiciousQuantifier(
            rule.name,
            rule.line_number,
            ' '.join(match[0].split()),
            'Consider (element1 | element2 | element3)* instead of '
            'element1? element2? element3?',
            'Several optional elements in a row usually mean zero or more of '
            'any of them',
        )

    optional = [match[1] for match in _OPTIONAL_REF_RE.finditer(text)]
    if optional and any(marker in rule.name for marker in _COLLECTION_MARKERS):
        yield SuspiciousQuantifier(
            rule.name,
            rule.line_number,
            ' '.join(f'{name}?' for name in optional),
            "The rule name suggests several items; consider changing '?' to '*'",
            "Names containing '_rule', '_setting' or '_property' usually allow "
            'repeated items',
        )

    for name, count in Counter(optional).items():
        if count > 1:
            yield SuspiciousQuantifier(
                rule.name,
                rule.line_number,
                f'{name}? appears {count} times',
                f'Use {name}* for multiple occurrences',
                'The same optional reference appears more than once',
            )


def detect_suspicious_quantifiers(model: GrammarModel, /) -> list[SuspiciousQuantifier]:
    """``?`` quantifiers that probably should be ``*``."""
    found: list[SuspiciousQuantifier] = []
    for rule in model.rules:
        found.extend(_rule_smells(rule))
    return found


def suggest_missing_tokens(names: Iterable[str], /) -> list[TokenSuggestion]:
    """Propose a lexer pattern for each undefined token name."""
    suggestions: list[TokenSuggestion] = []
    for name in names:
        for test, pattern, reasoning in _TOKEN_TEMPLATES:
            if test(name):
                suggestions.append(TokenSuggestion(name, pattern, reasoning))
                break
        else:
            suggestions.append(
                TokenSuggestion(name, _DEFAULT_TOKEN_PATTERN, 'Generic token pattern')
            )
    return suggestions


def _literal_tokens(model: GrammarModel, /) -> dict[str, str]:
    """Literal text to the first lexer rule that matches exactly that literal."""
    tokens: dict[str, str] = {}
    for rule in model.lexer_rules():
        if rule.is_fragment:
            continue
        literal = literal_only(rule.pattern)
        if literal is not None:
            tokens.setdefault(literal, rule.name)
    return tokens


def _style_issues(model: GrammarModel, /) -> Iterator[Issue]:  # noqa: C901
    if model.name and not model.name[0].isupper():
        yield Issue(
            'warning',
            f'Grammar name should use PascalCase: {model.name[0].upper()}'
            f'{model.name[1:]}',
            kind='grammar-name',
        )

    if len(model.rules) > MAX_RULES:
        yield Issue(
            'info',
            f'Grammar has {len(model.rules)} rules',
            kind='large-grammar',
            suggestion='Consider splitting it into several imported grammars',
        )

    literal_tokens = _literal_tokens(model)
    for rule in model.rules:
        if rule.name in RESERVED_RULE_NAMES:
            yield Issue(
                'error',
                f"Rule name '{rule.name}' is a reserved word",
                line_number=rule.line_number,
                rule_name=rule.name,
                kind='reserved-name',
                suggestion=f"Rename the rule, e.g. '{rule.name}_'",
            )

        if rule.kind == 'lexer' and not rule.is_fragment and not rule.name.isupper():
            yield Issue(
                'info',
                f"Lexer rule '{rule.name}' is not UPPER_CASE",
                line_number=rule.line_number,
                rule_name=rule.name,
                kind='lexer-rule-naming',
            )

        if rule_complexity(rule) > MAX_COMPLEXITY:
            yield Issue(
                'warning',
                f"Rule '{rule.name}' is very complex "
                f'(cyclomatic complexity {rule_complexity(rule)})',
                line_number=rule.line_number,
                rule_name=rule.name,
                kind='complex-rule',
                suggestion='Extract parts of the rule into sub-rules',
            )

        if any(len(line) > MAX_LINE_LENGTH for line in rule.definition.splitlines()):
            yield Issue(
                'info',
                f"Rule '{rule.name}' has lines longer than {MAX_LINE_LENGTH} "
                'characters',
                line_number=rule.line_number,
                rule_name=rule.name,
                kind='long-line',
                suggestion='Put each alternative on its own line',
            )

        if rule.kind != 'parser':
            continue
        for literal in dict.fromkeys(find_literals(rule.body)):
            token = literal_tokens.get(literal)
            if token is not None:
                yield Issue(
                    'info',
                    f"Rule '{rule.name}' uses the literal '{literal}' "
                    f'instead of the token {token}',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='literal-instead-of-token',
                    suggestion=f"Reference {token} instead of '{literal}'",
                )


def style_score(summary: IssueSummary, /) -> int:
    penalty = 10 * summary.errors + 5 * summary.warnings + summary.infos
    return max(0, min(100, 100 - penalty))


def check_style(model: GrammarModel, /) -> StyleReport:
    """Naming, size and token-usage conventions, with a 0-100 score."""
    issues = list(_style_issues(model))
    summary = IssueSummary.of(issues, len(model.rules))
    return StyleReport(style_score(summary), issues, summary)


def suggestions(model: GrammarModel, /) -> list[str]:
    """Short improvement hints for ``model`` as a whole."""
    hints: list[str] = []
    if model.name and not model.name[0].isupper():
        hints.append(
            'Grammar name should use PascalCase: '
            f'{model.name[0].upper()}{model.name[1:]}'
        )
    if len(model.rules) > MAX_RULES:
        hints.append(
            f'Grammar has {len(model.rules)} rules - consider breaking it into '
            'multiple grammars'
        )
    for rule in model.rules:
        alternatives = alternative_count(rule)
        if alternatives > MAX_ALTERNATIVES:
            hints.append(
                f"Rule '{rule.name}' has {alternatives} alternatives - consider "
                'refactoring'
            )
    if len(model.issues) > MANY_ISSUES:
        hints.append(
            f'Grammar has {len(model.issues)} issues - review and address them'
        )
    return hints



def detect_incomplete_parsing(model: GrammarModel, /) -> list[IncompleteParsing]:
    """Rules that skip over input instead of giving it structure."""
    found: list[IncompleteParsing] = []
    for rule in model.rules:
        if _REST_OF_LINE in rule.definition:
            found.append(
                IncompleteParsing(
                    rule.name,
                    rule.line_number,
                    _REST_OF_LINE,
                    f'This discards content; parse the structure of {rule.name} '
                    'instead',
                )
            )
        if len(rule.definition) < SHORT_RULE and _NEGATED_RUN_RE.search(
            rule.definition
        ):
            found.append(
                IncompleteParsing(
                    rule.name,
                    rule.line_number,
                    'Simple negation pattern',
                    'Rule uses ~[...]+, which may be too broad; consider specific '
                    'token types',
                )
            )
    return found


def _normalized(rule: Rule, /) -> str:
    return ' '.join(strip_comments(rule.definition).split())


def compare_models(first: GrammarModel, second: GrammarModel, /) -> GrammarComparison:
    """Rules added, removed and modified going from ``first`` to ``second``.

    A rule is modified when its definition differs once comments and
    whitespace are ignored. Only the first definition of a name is compared.
    """
    first_names = dict.fromkeys(first.rule_names())
    second_names = dict.fromkeys(second.rule_names())
    modified: list[str] = []
    for name in first_names:
        before = first.rule(name)
        after = second.rule(name)
        if before and after and _normalized(before) != _normalized(after):
            modified.append(name)
    return GrammarComparison(
        RuleCounts.of(first),
        RuleCounts.of(second),
        added=[name for name in second_names if name not in first_names],
        removed=[name for name in first_names if name not in second_names],
        modified=modified,
    )
