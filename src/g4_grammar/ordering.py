"""Reference-graph ordering: topological sort, cycle search and rule orderings.

Orderings only ever return rule names. Rewriting grammar source into the new
order is left to the caller.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from g4_grammar.common import MAX_GRAPH_DEPTH
from g4_grammar.validation import reference_graph, referencing_rules

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from g4_grammar._types import OrderResultDict
    from g4_grammar.model import GrammarModel, Rule

logger = logging.getLogger(__name__)

type OrderStrategy = Literal['alphabetical', 'type', 'dependency', 'usage']


@dataclass(slots=True)
class OrderResult:
    success: bool
    rules: list[str] = field(default_factory=list)
    message: str = ''

    def to_json(self) -> OrderResultDict:
        return {'success': self.success, 'rules': self.rules, 'message': self.message}


def topological_sort(rules: Sequence[Rule], /) -> list[str]:
    """Order ``rules`` so that every rule precedes the rules referencing it.

    Only references between members of ``rules`` are considered and
    self-references are ignored. If the subgraph is cyclic the input order is
    returned unchanged.
    """
    first: dict[str, Rule] = {}
    for rule in rules:
        first.setdefault(rule.name, rule)
    names = list(first)
    members = set(names)
    users: dict[str, list[str]] = {name: [] for name in names}
    in_degree: dict[str, int] = dict.fromkeys(names, 0)

    for rule in first.values():
        dependencies = {
            name
            for name in rule.referenced_rules
            if name in members and name != rule.name
        }
        in_degree[rule.name] = len(dependencies)
        for dependency in dependencies:
            users[dependency].append(rule.name)

    queue = deque(name for name in names if in_degree[name] == 0)
    ordered: list[str] = []
    while queue:
        name = queue.popleft()
        ordered.append(name)
        for user in users[name]:
            in_degree[user] -= 1
            if in_degree[user] == 0:
                queue.append(user)

    if len(ordered) < len(names):
        logger.debug(
            'cyclic reference graph (%d of %d rules ordered); keeping input order',
            len(ordered),
            len(names),
        )
        return names
    return ordered


def find_cycle(
    graph: Mapping[str, Iterable[str]], start: str, /
) -> list[str] | None:
    """Path from ``start`` back to itself, found depth-first.

    The recursion stack is an explicit list bounded by ``MAX_GRAPH_DEPTH``.
    """
    path = [start]
    visited = {start}
    stack = [iter(graph.get(start, ()))]
    while stack:
        for child in stack[-1]:
            if child == start:
                return [*path, start]
            if child in visited or len(path) >= MAX_GRAPH_DEPTH:
                continue
            visited.add(child)
            path.append(child)
            stack.append(iter(graph.get(child, ())))
            break
        else:
            stack.pop()
            path.pop()
    return None


def _reachable(graph: Mapping[str, Iterable[str]], start: str) -> set[str]:
    seen: set[str] = set()
    pending = list(graph.get(start, ()))
    while pending:
        name = pending.pop()
        if name in seen or name == start:
            continue
        seen.add(name)
        pending.extend(graph.get(name, ()))
    return seen


def _by_type(model: GrammarModel, *, parser_first: bool) -> list[str]:
    parser = [rule.name for rule in model.parser_rules()]
    lexer = [rule.name for rule in model.lexer_rules() if not rule.is_fragment]
    fragments = [rule.name for rule in model.lexer_rules() if rule.is_fragment]
    if parser_first:
        return [*parser, *lexer, *fragments]
    return [*lexer, *fragments, *parser]


def _around_anchor(model: GrammarModel, anchor: str) -> list[str]:
    graph = reference_graph(model)
    dependencies = _reachable(graph, anchor)
    incoming: dict[str, list[str]] = {
        name: sorted(users) for name, users in referencing_rules(model).items()
    }
    dependents = _reachable(incoming, anchor) - dependencies

    rules = [rule for rule in model.rules if rule.name in dependencies]
    ordered = topological_sort(rules)
    ordered.append(anchor)
    ordered.extend(rule.name for rule in model.rules if rule.name in dependents)
    placed = set(ordered)
    ordered.extend(sorted(set(model.rule_names()) - placed, key=str.lower))
    return ordered


def order_rules(
    model: GrammarModel,
    /,
    strategy: OrderStrategy = 'dependency',
    *,
    anchor: str | None = None,
    parser_first: bool = True,
) -> OrderResult:
    """Compute a new order for the rules of ``model``.

    Args:
        model: A scanned grammar.
        strategy: ``alphabetical``, ``type`` (parser rules, lexer rules, then
            fragments), ``dependency`` (each rule after the rules it
            references) or ``usage`` (most referenced first).
        anchor: For ``dependency``, group the rules around this rule:
            its dependencies, the rule itself, its dependents, then the rest
            alphabetically.
        parser_first: For ``type``, whether parser rules come first.

    Returns:
        ``OrderResult`` with the rule names in their new order, or
        ``success=False`` and a message.
    """
    if not model.rules:
        return OrderResult(False, message='Grammar has no rules to order')

    match strategy:
        case 'alphabetical':
            names = sorted(model.rule_names(), key=str.lower)
        case 'type':
            names = _by_type(model, parser_first=parser_first)
        case 'dependency' if anchor is not None:
            if model.rule(anchor) is None:
                return OrderResult(False, message=f"Rule '{anchor}' not found")
            names = _around_anchor(model, anchor)
        case 'dependency':
            names = [
                *topological_sort(model.parser_rules()),
                *topological_sort(model.lexer_rules()),
            ]
        case 'usage':
            incoming = referencing_rules(model)
            names = [
                rule.name
                for rule in sorted(
                    model.rules,
                    key=lambda rule: len(incoming.get(rule.name, ())),
                    reverse=True,
                )
            ]
        case _:
            message = f'Unknown ordering strategy: {strategy}'
            return OrderResult(False, message=message)

    return OrderResult(True, names, f'Ordered {len(names)} rules by {strategy}')
