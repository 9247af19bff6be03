"""Reference-graph checks over a scanned grammar.

Undefined and unused rules, duplicate definitions, a missing grammar
declaration, and direct left recursion.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import TYPE_CHECKING

from g4_grammar.common import BUILTIN_RULES, UNUSED_ALLOW_PREFIXES
from g4_grammar.grammar_utils import clean_parser_body, split_alternatives
from g4_grammar.model import Issue

if TYPE_CHECKING:
    from collections.abc import Iterable

    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)


def defined_names(model: GrammarModel, /) -> set[str]:
    """Rule names plus ``tokens {}`` declarations and built-in tokens."""
    return {rule.name for rule in model.rules} | set(model.tokens) | BUILTIN_RULES


def referencing_rules(model: GrammarModel, /) -> dict[str, set[str]]:
    """Map each referenced name to the rules that reference it (self excluded)."""
    incoming: dict[str, set[str]] = {}
    for rule in model.rules:
        for name in rule.referenced_rules:
            if name != rule.name:
                incoming.setdefault(name, set()).add(rule.name)
    return incoming


def reference_graph(model: GrammarModel, /) -> dict[str, tuple[str, ...]]:
    """Rule name to its references; the first definition of a name wins."""
    graph: dict[str, tuple[str, ...]] = {}
    for rule in model.rules:
        graph.setdefault(rule.name, rule.referenced_rules)
    return graph


def first_element(alternative: str, /) -> str | None:
    """First bare identifier of an alternative, if it starts with one."""
    text = clean_parser_body(alternative).lstrip(' (\t\n')
    match = re.match(r'[A-Za-z_]\w*', text)
    return match[0] if match is not None else None


def has_direct_left_recursion(rule: Rule, /) -> bool:
    return any(
        first_element(alternative) == rule.name
        for alternative in split_alternatives(rule.body)
    )


def validate(
    model: GrammarModel,
    /,
    *,
    unused_allow_prefixes: Iterable[str] = UNUSED_ALLOW_PREFIXES,
) -> list[Issue]:
    """Structural checks over the reference graph of ``model``.

    Args:
        model: A scanned grammar.
        unused_allow_prefixes: Rule-name prefixes never reported as unused.

    Returns:
        Issues in a stable order: declaration, duplicates, then per-rule
        findings in source order.
    """
    issues: list[Issue] = []
    allow = tuple(unused_allow_prefixes)

    if not model.name:
        issues.append(
            Issue(
                'error',
                'Missing grammar declaration',
                line_number=1,
                kind='missing-declaration',
                suggestion="Add 'grammar Name;' at the top of the file",
            )
        )

    counts = Counter(rule.name for rule in model.rules)
    seen: set[str] = set()
    for rule in model.rules:
        if counts[rule.name] > 1 and rule.name in seen:
            issues.append(
                Issue(
                    'error',
                    f'Duplicate rule definition: {rule.name}',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='duplicate-rule',
                )
            )
        seen.add(rule.name)

    defined = defined_names(model)
    incoming = referencing_rules(model)

    for rule in model.rules:
        for name in rule.referenced_rules:
            if name not in defined:
                issues.append(
                    Issue(
                        'warning',
                        f'Reference to undefined rule: {name}',
                        line_number=rule.line_number,
                        rule_name=rule.name,
                        kind='undefined-reference',
                    )
                )

        if rule.name not in incoming and not rule.name.startswith(allow):
            issues.append(
                Issue(
                    'info',
                    f'Rule is defined but never used: {rule.name}',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='unused-rule',
                )
            )

        if rule.kind == 'parser' and has_direct_left_recursion(rule):
            issues.append(
                Issue(
                    'warning',
                    f'Rule {rule.name} is directly left-recursive',
                    line_number=rule.line_number,
                    rule_name=rule.name,
                    kind='left-recursion',
                    suggestion=(
                        'Direct left recursion is supported by the generator, '
                        'but check that a non-recursive alternative exists'
                    ),
                )
            )

    logger.debug('validation produced %d issues', len(issues))
    return issues
