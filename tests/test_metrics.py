from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from g4_grammar.common import SELF_RECURSION_DEPTH
from g4_grammar.grammar_utils import cyclomatic_complexity
from g4_grammar.metrics import (
    compute_metrics,
    estimate_parse_complexity,
    fan_in,
    fan_out,
    recursion_depth,
    rule_statistics,
)
from g4_grammar.model import GrammarModel

if TYPE_CHECKING:
    from g4_grammar._types import ParseComplexity


class TestComputeMetrics:
    def test_size(self, calc: GrammarModel) -> None:
        size = compute_metrics(calc)['size']
        assert size['total_rules'] == 7
        assert size['parser_rules'] == 3
        assert size['lexer_rules'] == 4
        assert size['fragments'] == 0
        assert size['total_lines'] == calc.line_count

    def test_branching(self, calc: GrammarModel) -> None:
        branching = compute_metrics(calc)['branching']
        assert branching['max_alternatives'] == 5
        assert branching['branching_distribution'] == {
            '1-2': 6,
            '3-5': 1,
            '6-10': 0,
            '10+': 0,
        }
        top = branching['rules_with_most_branching'][0]
        assert top['name'] == 'expr'
        assert top['alternatives'] == 5
        assert top['depth'] == 1

    def test_complexity(self, calc: GrammarModel) -> None:
        complexity = compute_metrics(calc)['complexity']
        assert complexity['max_cyclomatic_complexity'] == 5
        assert complexity['recursive_rules'] == ['expr']

    def test_dependencies(self, calc: GrammarModel) -> None:
        dependencies = compute_metrics(calc)['dependencies']
        assert dependencies['orphan_rules'] == ['prog', 'WS']
        assert dependencies['hub_rules'] == []
        assert dependencies['most_referenced'][0] == {'name': 'ID', 'count': 2}

    def test_empty_grammar(self) -> None:
        metrics = compute_metrics(GrammarModel('Empty'))
        assert metrics['size']['total_rules'] == 0
        assert metrics['branching']['avg_alternatives'] == 0.0
        assert metrics['complexity']['estimated_parse_complexity'] == 'low'


class TestRuleStatistics:
    def test_statistics(self, calc: GrammarModel) -> None:
        statistics = rule_statistics(calc, 'expr')
        assert statistics is not None
        assert statistics['kind'] == 'parser'
        assert statistics['alternatives'] == 5
        assert statistics['cyclomatic_complexity'] == 5
        assert statistics['fan_in'] == 1
        assert statistics['fan_out'] == 2
        assert statistics['referenced_by'] == ['stat']

    def test_unknown_rule(self, calc: GrammarModel) -> None:
        assert rule_statistics(calc, 'nope') is None

    def test_fan_in_and_out(self, calc: GrammarModel) -> None:
        assert fan_in(calc)['ID'] == 2
        assert fan_out(calc)['stat'] == 3


class TestRecursion:
    def test_self_recursion(self, calc: GrammarModel) -> None:
        assert recursion_depth(calc, 'expr') == SELF_RECURSION_DEPTH

    def test_indirect_recursion(self, ambiguous: GrammarModel) -> None:
        assert recursion_depth(ambiguous, 'x') == 2

    def test_no_recursion(self, calc: GrammarModel) -> None:
        assert recursion_depth(calc, 'stat') == 0

    def test_cap(self, ambiguous: GrammarModel) -> None:
        assert recursion_depth(ambiguous, 'x', cap=1) == 0

    @pytest.mark.parametrize(
        ('average', 'recursive', 'parser', 'expected'),
        [
            (2.0, 0, 3, 'low'),
            (2.0, 1, 3, 'medium'),
            (4.0, 0, 3, 'medium'),
            (7.5, 0, 3, 'high'),
            (12.0, 0, 0, 'very-high'),
            (12.0, 5, 5, 'very-high'),
        ],
    )
    def test_estimate_parse_complexity(
        self, average: float, recursive: int, parser: int, expected: ParseComplexity
    ) -> None:
        assert estimate_parse_complexity(average, recursive, parser) == expected


@pytest.mark.parametrize(
    ('body', 'expected'),
    [
        ('A B C', 1),
        ('A B | C', 2),
        ("A ('x' | 'y' | 'z') B", 1),
        ("A ('x' | 'y') | B", 2),
        ('A (B | C)*', 2),
        ("A+ '|' B?", 3),
    ],
)
def test_cyclomatic_complexity(body: str, expected: int) -> None:
    assert cyclomatic_complexity(body) == expected
