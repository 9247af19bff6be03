"""Catastrophic-backtracking heuristics for lexer patterns.

The checks look at the shape of each pattern: quantified groups whose body is
itself quantified, repeated alternations whose branches can match the same
text, and unbounded repetition of very broad sets. Findings are advisory; the
disjointness test that suppresses nested-quantifier findings is based on rule
names and leading character sets, not on automaton intersection.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from g4_grammar.common import MAX_FRAGMENT_INLINE_DEPTH
from g4_grammar.grammar_utils import normalize_alternative, split_alternatives
from g4_grammar.pattern_compiler import (
    PatternError,
    first_chars,
    iter_atoms,
    lexer_patterns,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from g4_grammar._types import (
        ReDoSReportDict,
        RiskLevel,
        RiskSummaryDict,
        VulnerabilityDict,
    )
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

_IDENTIFIER_RE: Final = re.compile(r'[A-Za-z_]\w*')
_COMPLEMENT_PREFIXES: Final = ('Non', 'Not', 'Non_', 'Not_', 'No')
_OPTIONAL_RUN: Final = 3
_SEVERITY_ORDER: Final = {'high': 0, 'medium': 1, 'low': 2}


@dataclass(slots=True, frozen=True)
class Vulnerability:
    rule: str
    line: int
    kind: str
    severity: RiskLevel
    issue: str
    pattern: str
    suggestion: str

    def to_json(self) -> VulnerabilityDict:
        return {
            'rule': self.rule,
            'line': self.line,
            'kind': self.kind,
            'severity': self.severity,
            'issue': self.issue,
            'pattern': self.pattern,
            'suggestion': self.suggestion,
        }


@dataclass(slots=True)
class ReDoSReport:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)

    @property
    def summary(self) -> RiskSummaryDict:
        return {
            'high': sum(1 for v in self.vulnerabilities if v.severity == 'high'),
            'medium': sum(1 for v in self.vulnerabilities if v.severity == 'medium'),
            'low': sum(1 for v in self.vulnerabilities if v.severity == 'low'),
        }

    def to_json(self) -> ReDoSReportDict:
        return {
            'vulnerabilities': [v.to_json() for v in self.vulnerabilities],
            'summary': self.summary,
        }


def complementary_names(first: str, second: str, /) -> bool:
    """Whether two rule names read as complements, e.g. ``Space``/``NonSpace``."""
    for prefix in _COMPLEMENT_PREFIXES:
        if first == f'{prefix}{second}' or second == f'{prefix}{first}':
            return True
    return False


class _RuleScanner:
    def __init__(self, rule: Rule, fragments: Mapping[str, str]) -> None:
        self.rule = rule
        self.fragments = fragments
        self.findings: list[Vulnerability] = []

    def report(  # noqa: PLR0913
        self,
        kind: str,
        severity: RiskLevel,
        issue: str,
        pattern: str,
        suggestion: str,
    ) -> None:
        if any(
            finding.issue == issue and finding.pattern == pattern
            for finding in self.findings
        ):
            return
        self.findings.append(
            Vulnerability(
                self.rule.name,
                self.rule.line_number,
                kind,
                severity,
                issue,
                pattern.strip(),
                suggestion,
            )
        )

    def visit(self, text: str, *, repeated: bool) -> None:
        alternatives = split_alternatives(text)
        self.check_alternation(alternatives, text, repeated=repeated)
        for alternative in alternatives:
            atoms = list(iter_atoms(alternative))
            self.check_optional_run(atoms, alternative)
            for atom, quantifier in atoms:
                repeats = quantifier[:1] in {'*', '+'}
                if atom[0] == '(':
                    if repeats:
                        self.check_nested(atom[1:-1], atom + quantifier)
                    self.visit(atom[1:-1], repeated=repeats)
                elif atom == '.' and repeats and not quantifier.endswith('?'):
                    self.report(
                        'greedy-wildcard',
                        'medium',
                        'Greedy wildcard repetition scans to the end of input '
                        'before backtracking',
                        atom + quantifier,
                        f"Use the non-greedy form '.{quantifier}?' or a bounded set",
                    )
                elif atom.startswith('~') and repeats:
                    self.report(
                        'negated-repetition',
                        'low',
                        'Unbounded repetition of a negated set matches almost '
                        'any input',
                        atom + quantifier,
                        'Make sure a distinct terminator follows the repetition',
                    )

    def has_repetition(self, text: str, depth: int = 0) -> bool:
        if depth > MAX_FRAGMENT_INLINE_DEPTH:
            return False
        for alternative in split_alternatives(text):
            for atom, quantifier in iter_atoms(alternative):
                if quantifier[:1] in {'*', '+'}:
                    return True
                if atom[0] == '(' and self.has_repetition(atom[1:-1], depth + 1):
                    return True
                body = self.fragments.get(atom)
                if body is not None and self.has_repetition(body, depth + 1):
                    return True
        return False

    def disjoint(self, alternatives: list[str]) -> bool:
        stripped = [alternative.strip() for alternative in alternatives]
        for i, first in enumerate(stripped):
            for second in stripped[i + 1 :]:
                if (
                    _IDENTIFIER_RE.fullmatch(first)
                    and _IDENTIFIER_RE.fullmatch(second)
                    and complementary_names(first, second)
                ):
                    continue
                first_set = first_chars(first, fragments=self.fragments)
                second_set = first_chars(second, fragments=self.fragments)
                if first_set is None or second_set is None or first_set & second_set:
                    return False
        return True

    def check_nested(self, inner: str, shown: str) -> None:
        alternatives = split_alternatives(inner)
        if not self.has_repetition(inner):
            return
        if len(alternatives) > 1 and self.disjoint(alternatives):
            return
        self.report(
            'nested-quantifier',
            'high',
            'Nested quantifiers can cause catastrophic backtracking',
            shown,
            'Flatten the repetition or make the inner alternatives disjoint',
        )

    def check_alternation(
        self, alternatives: list[str], text: str, *, repeated: bool
    ) -> None:
        if len(alternatives) < 2:  # noqa: PLR2004
            return

        normalized = [normalize_alternative(item) for item in alternatives]
        non_empty = [item for item in normalized if item]
        if repeated and len(set(non_empty)) < len(non_empty):
            self.report(
                'duplicate-alternatives',
                'high',
                'Repeated alternation contains identical alternatives',
                text,
                'Remove the duplicate alternative',
            )

        leading: dict[str, str] = {}
        for alternative in alternatives:
            atoms = list(iter_atoms(alternative))
            if not atoms or atoms[0][0][:1] != "'":
                continue
            literal = atoms[0][0]
            key = literal[1:2]
            if key in leading and leading[key] != literal:
                self.report(
                    'shared-prefix',
                    'medium' if repeated else 'low',
                    'Alternatives share a literal prefix and are tried one by one',
                    text,
                    f'Factor out the common prefix of {leading[key]} and {literal}',
                )
                return
            leading.setdefault(key, literal)

    def check_optional_run(
        self, atoms: list[tuple[str, str]], alternative: str
    ) -> None:
        run = 0
        for _, quantifier in atoms:
            run = run + 1 if quantifier[:1] == '?' else 0
            if run >= _OPTIONAL_RUN:
                self.report(
                    'optional-run',
                    'low',
                    f'{run} or more consecutive optional elements',
                    alternative,
                    'Consider grouping the optional elements',
                )
                return


def detect_redos(model: GrammarModel, /) -> ReDoSReport:
    """Scan every lexer rule of ``model`` for backtracking risks."""
    fragments = lexer_patterns(model)
    report = ReDoSReport()
    for rule in model.lexer_rules():
        scanner = _RuleScanner(rule, fragments)
        try:
            scanner.visit(rule.pattern, repeated=False)
        except PatternError as e:
            logger.debug('skipping ReDoS scan of %s: %s', rule.name, e)
            continue
        report.vulnerabilities.extend(scanner.findings)

    report.vulnerabilities.sort(key=lambda v: _SEVERITY_ORDER[v.severity])
    logger.debug('ReDoS scan found %d candidates', len(report.vulnerabilities))
    return report
