"""Performance bottleneck heuristics.

Each finding names a rule (or a group of keyword rules), how severe the cost
is likely to be and what to change. The findings are ranked high, medium,
then low; within a severity they keep detection order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from g4_grammar.grammar_utils import literal_only, split_alternatives
from g4_grammar.metrics import alternative_count, recursion_depth
from g4_grammar.ordering import topological_sort
from g4_grammar.pattern_compiler import PatternError, iter_atoms
from g4_grammar.redos import detect_redos

if TYPE_CHECKING:
    from collections.abc import Iterator

    from g4_grammar._types import (
        BottleneckDict,
        BottleneckMetricsDict,
        BottleneckReportDict,
        RiskLevel,
    )
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

_SEVERITY_ORDER: Final = {'high': 0, 'medium': 1, 'low': 2}
_BRANCHING_THRESHOLDS: Final[tuple[tuple[int, RiskLevel], ...]] = (
    (50, 'high'),
    (20, 'medium'),
    (10, 'low'),
)
_DEEP_RECURSION: Final = 5
_NOTABLE_RECURSION: Final = 3
_MIN_STRING_ALTERNATIVES: Final = 3
_MIN_DELIMITED_ATOMS: Final = 3
_GREEDY_KINDS: Final = frozenset({'nested-quantifier', 'greedy-wildcard'})


@dataclass(slots=True, frozen=True)
class Bottleneck:
    type: str
    severity: RiskLevel
    description: str
    suggestion: str
    impact: str
    rule: str | None = None
    line: int | None = None
    pattern: str | None = None

    def to_json(self) -> BottleneckDict:
        bottleneck: BottleneckDict = {
            'type': self.type,
            'severity': self.severity,
            'description': self.description,
            'suggestion': self.suggestion,
            'impact': self.impact,
        }
        if self.rule is not None:
            bottleneck['rule'] = self.rule
        if self.line is not None:
            bottleneck['line'] = self.line
        if self.pattern is not None:
            bottleneck['pattern'] = self.pattern
        return bottleneck


@dataclass(slots=True)
class BottleneckReport:
    bottlenecks: list[Bottleneck] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def high_severity(self) -> int:
        return sum(1 for item in self.bottlenecks if item.severity == 'high')

    @property
    def estimated_improvement(self) -> str:
        if self.high_severity:
            return 'significant'
        if any(item.severity == 'medium' for item in self.bottlenecks):
            return 'moderate'
        if self.bottlenecks:
            return 'minor'
        return 'none'

    @property
    def metrics(self) -> BottleneckMetricsDict:
        return {
            'total_bottlenecks': len(self.bottlenecks),
            'high_severity': self.high_severity,
            'estimated_improvement': self.estimated_improvement,
        }

    def to_json(self) -> BottleneckReportDict:
        return {
            'bottlenecks': [item.to_json() for item in self.bottlenecks],
            'metrics': self.metrics,
            'recommendations': self.recommendations,
        }


def _high_branching(model: GrammarModel, /) -> Iterator[Bottleneck]:
    for rule in model.parser_rules():
        alternatives = alternative_count(rule)
        for threshold, severity in _BRANCHING_THRESHOLDS:
            if alternatives >= threshold:
                yield Bottleneck(
                    'high-branching',
                    severity,
                    f"Rule '{rule.name}' has {alternatives} alternatives",
                    'Group related alternatives into sub-rules or order the '
                    'most frequent alternatives first',
                    f'Prediction considers up to {alternatives} alternatives '
                    'at each decision',
                    rule.name,
                    rule.line_number,
                )
                break


def _repeated_negation(text: str, /, *, repeated: bool = False) -> str | None:
    for alternative in split_alternatives(text):
        for atom, quantifier in iter_atoms(alternative):
            repeats = repeated or quantifier[:1] in {'*', '+'}
            if atom.startswith('~') and repeats:
                return atom + quantifier
            if atom[0] == '(':
                found = _repeated_negation(atom[1:-1], repeated=repeats)
                if found is not None:
                    return found
    return None


def _tilde_negation(rule: Rule, /) -> Bottleneck | None:
    try:
        shown = _repeated_negation(rule.pattern)
    except PatternError as e:
        logger.debug('cannot split %s into atoms: %s', rule.name, e)
        return None
    if shown is None:
        return None
    return Bottleneck(
        'tilde-negation',
        'low',
        f"Rule '{rule.name}' repeats a negated set",
        'Make sure a distinct terminator follows, or move the content '
        'into a lexer mode',
        'Broad negated sets keep the lexer consuming until the terminator',
        rule.name,
        rule.line_number,
        shown,
    )


def _missing_mode(rule: Rule, /) -> Bottleneck | None:
    """Delimited content whose body is a repeated multi-way alternation."""
    try:
        atoms = list(iter_atoms(rule.pattern))
    except PatternError:
        return None
    if len(atoms) < _MIN_DELIMITED_ATOMS or atoms[0][0][:1] != "'":
        return None
    if atoms[0] != atoms[-1]:
        return None
    for atom, quantifier in atoms[1:-1]:
        if atom[0] != '(' or quantifier[:1] not in {'*', '+'}:
            continue
        if len(split_alternatives(atom[1:-1])) >= _MIN_STRING_ALTERNATIVES:
            return Bottleneck(
                'missing-mode',
                'low',
                f"Rule '{rule.name}' lexes delimited content with one pattern",
                f'Consider a lexer mode entered on {atoms[0][0]} with one rule '
                'per kind of content',
                'Every character of the content is matched against all '
                'alternatives',
                rule.name,
                rule.line_number,
                rule.pattern,
            )
    return None


def _greedy_loops(model: GrammarModel, /) -> Iterator[Bottleneck]:
    for vulnerability in detect_redos(model).vulnerabilities:
        if vulnerability.kind not in _GREEDY_KINDS:
            continue
        yield Bottleneck(
            'greedy-loop',
            vulnerability.severity,
            vulnerability.issue,
            vulnerability.suggestion,
            'Backtracking cost grows with the length of the unmatched input',
            vulnerability.rule,
            vulnerability.line,
            vulnerability.pattern,
        )


def _deep_recursion(model: GrammarModel, /) -> Iterator[Bottleneck]:
    for rule in model.parser_rules():
        if rule.name in rule.referenced_rules:
            continue
        depth = recursion_depth(model, rule.name)
        if depth >= _DEEP_RECURSION:
            severity: RiskLevel = 'medium'
        elif depth >= _NOTABLE_RECURSION:
            severity = 'low'
        else:
            continue
        yield Bottleneck(
            'deep-recursion',
            severity,
            f"Rule '{rule.name}' recurses through {depth} rules",
            'Shorten the cycle, or rewrite it as a loop where the structure '
            'allows',
            'Each level of the cycle adds a call frame and a prediction',
            rule.name,
            rule.line_number,
        )


def _prefix_collisions(model: GrammarModel, /) -> Iterator[Bottleneck]:
    keywords: list[tuple[Rule, str]] = []
    for rule in model.lexer_rules():
        literal = literal_only(rule.pattern)
        if not rule.is_fragment and literal and literal.isidentifier():
            keywords.append((rule, literal))

    for rule, literal in keywords:
        longer = [
            other
            for other_rule, other in keywords
            if other != literal
            and other.startswith(literal)
            and other_rule.mode == rule.mode
        ]
        if not longer:
            continue
        shown = ', '.join(f"'{item}'" for item in longer)
        yield Bottleneck(
            'prefix-collision',
            'low',
            f"Keyword '{literal}' is a prefix of {shown}",
            'Keep the keyword rules before the identifier rule and check '
            'that maximal munch picks the intended token',
            'The lexer reads past the shorter keyword before deciding',
            rule.name,
            rule.line_number,
        )


def _recommendations(model: GrammarModel, report: BottleneckReport, /) -> list[str]:
    counts: dict[str, int] = {}
    for item in report.bottlenecks:
        counts[item.type] = counts.get(item.type, 0) + 1

    recommendations: list[str] = []
    if counts.get('greedy-loop'):
        recommendations.append(
            f"Fix {counts['greedy-loop']} greedy loop(s) first; they have the "
            'highest worst-case cost'
        )
    if counts.get('high-branching'):
        recommendations.append(
            f"Split {counts['high-branching']} rule(s) with many alternatives "
            'into sub-rules'
        )
    if counts.get('deep-recursion'):
        recommendations.append(
            f"Shorten {counts['deep-recursion']} long recursion cycle(s)"
        )
    if counts.get('missing-mode') or counts.get('tilde-negation'):
        recommendations.append(
            'Use lexer modes for strings, comments and other delimited content'
        )
    if counts.get('prefix-collision'):
        recommendations.append('Review the declaration order of keyword rules')

    parser_rules = model.parser_rules()
    if len(parser_rules) > 1:
        order = topological_sort(parser_rules)
        recommendations.append(f"Parser rule dependency order: {', '.join(order)}")
    return recommendations


def analyze_bottlenecks(model: GrammarModel, /) -> BottleneckReport:
    """Find rules likely to slow down lexing or parsing."""
    bottlenecks: list[Bottleneck] = [*_high_branching(model)]
    for rule in model.lexer_rules():
        if rule.is_fragment:
            continue
        for check in (_tilde_negation, _missing_mode):
            found = check(rule)
            if found is not None:
                bottlenecks.append(found)
    bottlenecks.extend(_greedy_loops(model))
    bottlenecks.extend(_deep_recursion(model))
    bottlenecks.extend(_prefix_collisions(model))
    bottlenecks.sort(key=lambda item: _SEVERITY_ORDER[item.severity])

    report = BottleneckReport(bottlenecks)
    report.recommendations = _recommendations(model, report)
    logger.debug('found %d bottlenecks', len(bottlenecks))
    return report
