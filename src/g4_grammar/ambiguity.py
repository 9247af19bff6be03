"""Heuristic ambiguity checks.

Each check can be switched off through ``AmbiguityOptions``. None of them is
a proof: they flag patterns that commonly lead to prediction conflicts or
lexer shadowing so that a human can look at them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from g4_grammar.common import DEFAULT_MIN_PREFIX_LENGTH
from g4_grammar.grammar_utils import (
    literal_only,
    normalize_alternative,
    split_alternatives,
)
from g4_grammar.model import Issue
from g4_grammar.ordering import find_cycle
from g4_grammar.pattern_compiler import (
    PatternError,
    compile_pattern,
    first_chars,
    lexer_patterns,
)
from g4_grammar.rule_matcher import is_rule_reference, parse_rule_structure

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from g4_grammar._types import AmbiguityReportDict, IssueSummaryDict
    from g4_grammar.model import Alternative, GrammarModel, Rule

logger = logging.getLogger(__name__)

_ELEMENT_TOKEN_RE: Final = re.compile(r"'(?:\\.|[^'\\])*'|[A-Za-z_]\w*|\S")


@dataclass(slots=True)
class AmbiguityOptions:
    check_identical_alternatives: bool = True
    check_overlapping_prefixes: bool = True
    check_ambiguous_optionals: bool = True
    check_left_recursion: bool = True
    check_lexer_conflicts: bool = True
    min_prefix_length: int = DEFAULT_MIN_PREFIX_LENGTH


@dataclass(slots=True)
class IssueSummary:
    errors: int = 0
    warnings: int = 0
    infos: int = 0
    rules_analyzed: int = 0

    @classmethod
    def of(cls, issues: list[Issue], rules_analyzed: int) -> IssueSummary:
        return cls(
            sum(1 for issue in issues if issue.severity == 'error'),
            sum(1 for issue in issues if issue.severity == 'warning'),
            sum(1 for issue in issues if issue.severity == 'info'),
            rules_analyzed,
        )

    def to_json(self) -> IssueSummaryDict:
        return {
            'errors': self.errors,
            'warnings': self.warnings,
            'infos': self.infos,
            'rules_analyzed': self.rules_analyzed,
        }


@dataclass(slots=True)
class AmbiguityReport:
    success: bool
    issues: list[Issue] = field(default_factory=list)
    summary: IssueSummary = field(default_factory=IssueSummary)

    def to_json(self) -> AmbiguityReportDict:
        return {
            'success': self.success,
            'issues': [issue.to_json() for issue in self.issues],
            'summary': self.summary.to_json(),
        }


def _alternatives(rule: Rule, /) -> list[str]:
    body = rule.pattern if rule.kind == 'lexer' else rule.body
    return split_alternatives(body)


def _element_tokens(alternative: str, /) -> list[str]:
    return _ELEMENT_TOKEN_RE.findall(normalize_alternative(alternative))


def _identical_alternatives(rule: Rule, /) -> Iterator[Issue]:
    seen: dict[str, int] = {}
    for number, alternative in enumerate(_alternatives(rule), start=1):
        normalized = normalize_alternative(alternative)
        if not normalized:
            continue
        if normalized in seen:
            yield Issue(
                'error',
                f"Rule '{rule.name}' has identical alternatives "
                f'{seen[normalized]} and {number}: {normalized}',
                line_number=rule.line_number,
                rule_name=rule.name,
                kind='identical-alternatives',
                suggestion='Remove the duplicate alternative',
            )
        else:
            seen[normalized] = number


def _overlapping_prefix(rule: Rule, min_length: int, /) -> Issue | None:
    """First pair of alternatives sharing a leading run of elements."""
    tokenized = [_element_tokens(alternative) for alternative in _alternatives(rule)]
    for i, first in enumerate(tokenized):
        for j in range(i + 1, len(tokenized)):
            second = tokenized[j]
            if first == second:
                continue
            shared = 0
            for left, right in zip(first, second, strict=False):
                if left != right:
                    break
                shared += 1
            if shared >= min_length:
                prefix = ' '.join(first[:shared])
                return Issue(
                    'warning',
                    f"Alternatives {i + 1} and {j + 1} of rule '{rule.name}' "
                    f'share the prefix: {prefix}',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='overlapping-prefix',
                    suggestion=f"Left-factor the common prefix '{prefix}'",
                )
    return None


def _optional_misuse(rule: Rule, /) -> Iterator[Issue]:
    for alternative in _alternatives(rule):
        tokens = _element_tokens(alternative)
        for k in range(len(tokens) - 2):
            element = tokens[k]
            if tokens[k + 1] != '?' or tokens[k + 2] != element:
                continue
            if element in {'(', ')', '|'} or (k > 0 and tokens[k - 1] == '~'):
                continue
            after = tokens[k + 3] if k + 3 < len(tokens) else ''
            if after == '*':
                yield Issue(
                    'warning',
                    f"Redundant optional in rule '{rule.name}': "
                    f'{element}? {element}* is the same as {element}*',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='redundant-optional',
                    suggestion=f'Replace with {element}*',
                )
            elif after not in {'?', '*', '+'}:
                yield Issue(
                    'warning',
                    f"Ambiguous optional in rule '{rule.name}': "
                    f'{element}? {element} can match one {element} two ways',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='ambiguous-optional',
                    suggestion=f'Did you mean {element} {element}? or {element}+',
                )


def _leading_references(alternative: Alternative, found: dict[str, None]) -> None:
    for element in alternative:
        if element.is_group:
            for inner in element.alternatives:
                _leading_references(inner, found)
        elif is_rule_reference(element):
            found.setdefault(str(element.content), None)
        if not element.is_nullable:
            return


def left_corner_graph(model: GrammarModel, /) -> dict[str, list[str]]:
    """Parser rules each parser rule can start with, self-loops excluded."""
    defined = {rule.name for rule in model.parser_rules()}
    graph: dict[str, list[str]] = {}
    for rule in model.parser_rules():
        found: dict[str, None] = {}
        for alternative in parse_rule_structure(rule.definition):
            _leading_references(alternative, found)
        graph.setdefault(
            rule.name, [name for name in found if name != rule.name and name in defined]
        )
    return graph


def _hidden_left_recursion(model: GrammarModel, /) -> Iterator[Issue]:
    graph = left_corner_graph(model)
    reported: set[frozenset[str]] = set()
    for rule in model.parser_rules():
        if rule.name not in graph:
            continue
        cycle = find_cycle(graph, rule.name)
        if cycle is None:
            continue
        members = frozenset(cycle)
        if members in reported:
            continue
        reported.add(members)
        yield Issue(
            'error',
            f'Hidden left recursion: {" -> ".join(cycle)}',
            line_number=rule.line_number,
            rule_name=rule.name,
            kind='hidden-left-recursion',
            suggestion=(
                'Only direct left recursion is rewritten by the generator; '
                'inline the intermediate rules or restructure the cycle'
            ),
        )


def _lexer_conflict(
    earlier: Rule, later: Rule, patterns: Mapping[str, str], /
) -> str | None:
    """Why ``earlier`` can shadow or collide with ``later``, if it can."""
    first_literal = literal_only(earlier.pattern)
    second_literal = literal_only(later.pattern)

    if first_literal is not None and second_literal is not None:
        if first_literal == second_literal:
            return f"both match the literal '{first_literal}'"
        if second_literal.startswith(first_literal) or first_literal.startswith(
            second_literal
        ):
            return f"literals '{first_literal}' and '{second_literal}' share a prefix"
        return None

    if second_literal is not None:
        try:
            pattern = compile_pattern(earlier.pattern, fragments=patterns)
        except PatternError:
            return None
        if pattern.regex.fullmatch(second_literal):
            return (
                f"'{second_literal}' is also matched by {earlier.name}, which is "
                f'declared first and wins on equal length'
            )
        return None

    if first_literal is not None:
        return None

    first_set = first_chars(earlier.pattern, fragments=patterns)
    second_set = first_chars(later.pattern, fragments=patterns)
    if first_set and second_set and (common := first_set & second_set):
        sample = ''.join(sorted(common))[:10]
        return f'both can start with the same characters ({sample!r})'
    return None


def _lexer_conflicts(model: GrammarModel, /) -> Iterator[Issue]:
    patterns = lexer_patterns(model)
    rules = [rule for rule in model.lexer_rules() if not rule.is_fragment]
    for i, earlier in enumerate(rules):
        for later in rules[i + 1 :]:
            if earlier.mode != later.mode or earlier.name == later.name:
                continue
            reason = _lexer_conflict(earlier, later, patterns)
            if reason is None:
                continue
            yield Issue(
                'warning',
                f"Lexer rules '{earlier.name}' and '{later.name}' conflict: {reason}",
                line_number=later.line_number,
                rule_name=earlier.name,
                kind='lexer-conflict',
                suggestion='Declaration order decides ties; check the intended order',
            )
            break


def analyze_ambiguities(
    model: GrammarModel, options: AmbiguityOptions | None = None, /
) -> AmbiguityReport:
    """Run the enabled ambiguity checks over ``model``.

    Args:
        model: A scanned grammar.
        options: Which checks to run; all are enabled by default.

    Returns:
        The report; ``success`` is ``False`` when any error-level issue was found.
    """
    options = options or AmbiguityOptions()
    issues: list[Issue] = []

    for rule in model.rules:
        if options.check_identical_alternatives:
            issues.extend(_identical_alternatives(rule))

        if rule.kind != 'parser':
            continue

        if options.check_overlapping_prefixes:
            issue = _overlapping_prefix(rule, options.min_prefix_length)
            if issue is not None:
                issues.append(issue)

        if options.check_ambiguous_optionals:
            issues.extend(_optional_misuse(rule))

    if options.check_left_recursion:
        issues.extend(_hidden_left_recursion(model))

    if options.check_lexer_conflicts:
        issues.extend(_lexer_conflicts(model))

    summary = IssueSummary.of(issues, len(model.rules))
    logger.debug('ambiguity analysis found %d issues', len(issues))
    return AmbiguityReport(summary.errors == 0, issues, summary)
