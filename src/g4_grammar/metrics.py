"""Size, branching, complexity and dependency metrics for a grammar."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from g4_grammar.common import HUB_THRESHOLD, MAX_RECURSION_DEPTH, SELF_RECURSION_DEPTH
from g4_grammar.grammar_utils import (
    cyclomatic_complexity,
    max_nesting_depth,
    split_alternatives,
)
from g4_grammar.validation import reference_graph, referencing_rules

if TYPE_CHECKING:
    from collections.abc import Mapping

    from g4_grammar._types import (
        BranchingMetricsDict,
        ComplexityMetricsDict,
        DependencyMetricsDict,
        GrammarMetricsDict,
        ParseComplexity,
        RuleStatisticsDict,
        SizeMetricsDict,
    )
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

_TOP_N = 5
_COMPLEXITY_LEVELS: tuple[ParseComplexity, ...] = ('low', 'medium', 'high', 'very-high')


def _analyzed_text(rule: Rule, /) -> str:
    return rule.pattern if rule.kind == 'lexer' else rule.body


def alternative_count(rule: Rule, /) -> int:
    return len(split_alternatives(_analyzed_text(rule)))


def rule_complexity(rule: Rule, /) -> int:
    return cyclomatic_complexity(_analyzed_text(rule))


def _average(values: list[int]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _bucket(alternatives: int, /) -> str:
    if alternatives <= 2:  # noqa: PLR2004
        return '1-2'
    if alternatives <= 5:  # noqa: PLR2004
        return '3-5'
    if alternatives <= 10:  # noqa: PLR2004
        return '6-10'
    return '10+'


def recursion_depth(
    model: GrammarModel, name: str, /, *, cap: int = MAX_RECURSION_DEPTH
) -> int:
    """Length of the shortest reference cycle through ``name``.

    A rule that references itself scores ``SELF_RECURSION_DEPTH``; no cycle
    within ``cap`` steps scores 0.
    """
    graph = reference_graph(model)
    references = graph.get(name, ())
    if name in references:
        return SELF_RECURSION_DEPTH

    seen = {name}
    queue = deque((child, 1) for child in references)
    while queue:
        node, depth = queue.popleft()
        if depth >= cap:
            continue
        for child in graph.get(node, ()):
            if child == name:
                return depth + 1
            if child not in seen:
                seen.add(child)
                queue.append((child, depth + 1))
    return 0


def _size(model: GrammarModel) -> SizeMetricsDict:
    lexer_rules = model.lexer_rules()
    return {
        'total_rules': len(model.rules),
        'parser_rules': len(model.parser_rules()),
        'lexer_rules': sum(1 for rule in lexer_rules if not rule.is_fragment),
        'fragments': sum(1 for rule in lexer_rules if rule.is_fragment),
        'total_lines': model.line_count,
        'avg_rule_length': _average([rule.line_count for rule in model.rules]),
    }


def _branching(model: GrammarModel) -> BranchingMetricsDict:
    counts = [(rule, alternative_count(rule)) for rule in model.rules]
    depths = [max_nesting_depth(_analyzed_text(rule)) for rule in model.rules]

    distribution = {'1-2': 0, '3-5': 0, '6-10': 0, '10+': 0}
    for _, alternatives in counts:
        distribution[_bucket(alternatives)] += 1

    ranked = sorted(counts, key=lambda item: item[1], reverse=True)[:_TOP_N]
    return {
        'avg_alternatives': _average([alternatives for _, alternatives in counts]),
        'max_alternatives': max((count for _, count in counts), default=0),
        'avg_branching_depth': _average(depths),
        'max_branching_depth': max(depths, default=0),
        'branching_distribution': distribution,
        'rules_with_most_branching': [
            {
                'name': rule.name,
                'alternatives': alternatives,
                'depth': max_nesting_depth(_analyzed_text(rule)),
            }
            for rule, alternatives in ranked
        ],
    }


def estimate_parse_complexity(
    average_complexity: float, recursive_rules: int, parser_rules: int
) -> ParseComplexity:
    if average_complexity < 3:  # noqa: PLR2004
        level = 0
    elif average_complexity < 6:  # noqa: PLR2004
        level = 1
    elif average_complexity < 10:  # noqa: PLR2004
        level = 2
    else:
        level = 3

    if parser_rules and recursive_rules / parser_rules > 0.25:  # noqa: PLR2004
        level = min(level + 1, len(_COMPLEXITY_LEVELS) - 1)
    return _COMPLEXITY_LEVELS[level]


def _complexity(model: GrammarModel) -> ComplexityMetricsDict:
    values = [rule_complexity(rule) for rule in model.rules]
    recursive = [
        rule.name for rule in model.rules if recursion_depth(model, rule.name) > 0
    ]
    average = _average(values)
    return {
        'avg_cyclomatic_complexity': average,
        'max_cyclomatic_complexity': max(values, default=0),
        'total_cyclomatic_complexity': sum(values),
        'recursive_rules': recursive,
        'estimated_parse_complexity': estimate_parse_complexity(
            average,
            sum(1 for rule in model.parser_rules() if rule.name in recursive),
            len(model.parser_rules()),
        ),
    }


def fan_in(model: GrammarModel, /) -> dict[str, int]:
    incoming = referencing_rules(model)
    return {rule.name: len(incoming.get(rule.name, ())) for rule in model.rules}


def fan_out(model: GrammarModel, /) -> dict[str, int]:
    return {
        name: sum(1 for child in references if child != name)
        for name, references in reference_graph(model).items()
    }


def _dependencies(model: GrammarModel) -> DependencyMetricsDict:
    incoming = fan_in(model)
    outgoing = fan_out(model)
    ranked = sorted(
        ((name, count) for name, count in incoming.items() if count > 0),
        key=lambda item: item[1],
        reverse=True,
    )[:_TOP_N]
    return {
        'avg_fan_in': _average(list(incoming.values())),
        'avg_fan_out': _average(list(outgoing.values())),
        'orphan_rules': [name for name, count in incoming.items() if count == 0],
        'hub_rules': [
            name for name, count in incoming.items() if count > HUB_THRESHOLD
        ],
        'most_referenced': [{'name': name, 'count': count} for name, count in ranked],
    }


def compute_metrics(model: GrammarModel, /) -> GrammarMetricsDict:
    """Aggregate metrics for every rule of ``model``."""
    metrics: GrammarMetricsDict = {
        'size': _size(model),
        'branching': _branching(model),
        'complexity': _complexity(model),
        'dependencies': _dependencies(model),
    }
    logger.debug(
        'metrics for %r: %d rules, average complexity %.2f',
        model.name,
        len(model.rules),
        metrics['complexity']['avg_cyclomatic_complexity'],
    )
    return metrics


def rule_statistics(model: GrammarModel, name: str, /) -> RuleStatisticsDict | None:
    """Per-rule metrics, or ``None`` if ``model`` has no rule ``name``."""
    rule = model.rule(name)
    if rule is None:
        return None

    incoming: Mapping[str, set[str]] = referencing_rules(model)
    depth = recursion_depth(model, name)
    return {
        'name': rule.name,
        'kind': rule.kind,
        'line': rule.line_number,
        'alternatives': alternative_count(rule),
        'depth': max_nesting_depth(_analyzed_text(rule)),
        'cyclomatic_complexity': rule_complexity(rule),
        'fan_in': len(incoming.get(name, ())),
        'fan_out': sum(1 for child in rule.referenced_rules if child != name),
        'referenced_by': sorted(incoming.get(name, ())),
        'references': list(rule.referenced_rules),
        'is_recursive': depth > 0,
        'recursion_depth': depth,
    }
