"""Lexer mode analysis.

Modes are read from ``mode NAME;`` declarations and transitions from the
``pushMode``/``mode``/``popMode`` commands of lexer rules. A ``popMode``
transition has no static target; it is recorded with the target ``<pop>``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from g4_grammar.common import DEFAULT_MODE
from g4_grammar.grammar_utils import remove_opaque
from g4_grammar.model import Issue
from g4_grammar.ordering import find_cycle

if TYPE_CHECKING:
    from collections.abc import Iterator

    from g4_grammar._types import (
        LexerModeReportDict,
        ModeEntryDict,
        ModeExitDict,
        ModeTransitionDict,
        ModeTransitionReportDict,
    )
    from g4_grammar.model import GrammarModel, LexerMode, Rule

logger = logging.getLogger(__name__)

POP_TARGET: Final = '<pop>'

_MODE_COMMAND_RE: Final = re.compile(
    r'\b(?:(pushMode|mode)\s*\(\s*([A-Za-z_]\w*)\s*\)|(popMode)\b)'
)


@dataclass(slots=True, frozen=True)
class ModeEntry:
    mode: str
    rule: str
    action: str

    def to_json(self) -> ModeEntryDict:
        return {'mode': self.mode, 'rule': self.rule, 'action': self.action}


@dataclass(slots=True, frozen=True)
class ModeExit:
    mode: str
    rule: str

    def to_json(self) -> ModeExitDict:
        return {'mode': self.mode, 'rule': self.rule}


@dataclass(slots=True, frozen=True)
class ModeTransition:
    source: str
    target: str
    action: str
    rule: str

    @property
    def is_pop(self) -> bool:
        return self.target == POP_TARGET

    def to_json(self) -> ModeTransitionDict:
        return {
            'source': self.source,
            'target': self.target,
            'action': self.action,
            'rule': self.rule,
        }


@dataclass(slots=True)
class LexerModeReport:
    modes: list[LexerMode] = field(default_factory=list)
    entry_points: list[ModeEntry] = field(default_factory=list)
    exit_points: list[ModeExit] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not any(issue.severity == 'error' for issue in self.issues)

    def to_json(self) -> LexerModeReportDict:
        return {
            'modes': [mode.to_json() for mode in self.modes],
            'entry_points': [entry.to_json() for entry in self.entry_points],
            'exit_points': [exit_.to_json() for exit_ in self.exit_points],
            'issues': [issue.to_json() for issue in self.issues],
        }


@dataclass(slots=True)
class ModeTransitionReport:
    transitions: list[ModeTransition] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not any(issue.severity == 'error' for issue in self.issues)

    def to_json(self) -> ModeTransitionReportDict:
        return {
            'transitions': [transition.to_json() for transition in self.transitions],
            'issues': [issue.to_json() for issue in self.issues],
            'suggestions': self.suggestions,
        }


def _mode_commands(rule: Rule, /) -> Iterator[tuple[str, str | None]]:
    """``(command, target)`` pairs; ``target`` is ``None`` for ``popMode``."""
    text = remove_opaque(rule.body)
    start = text.find('->')
    if start < 0:
        return
    for match in _MODE_COMMAND_RE.finditer(text, start):
        if match[3]:
            yield 'popMode', None
        else:
            yield match[1], match[2]


def mode_transitions(model: GrammarModel, /) -> list[ModeTransition]:
    """Every mode-changing command of every lexer rule, in declaration order."""
    transitions: list[ModeTransition] = []
    for rule in model.lexer_rules():
        if rule.is_fragment:
            continue
        for command, target in _mode_commands(rule):
            action = command if target is None else f'{command}({target})'
            transitions.append(
                ModeTransition(
                    rule.mode or DEFAULT_MODE, target or POP_TARGET, action, rule.name
                )
            )
    return transitions


def _mode_issues(
    model: GrammarModel, transitions: list[ModeTransition], /
) -> list[Issue]:
    issues: list[Issue] = []
    declared = {mode.name for mode in model.modes}
    custom = [mode for mode in model.modes if mode.name != DEFAULT_MODE]

    if custom and model.kind != 'lexer':
        issues.append(
            Issue(
                'error',
                'Lexer modes are only allowed in lexer grammars',
                line_number=custom[0].line_number,
                kind='mode-outside-lexer-grammar',
                suggestion='Move the lexer rules into a separate lexer grammar',
            )
        )

    for transition in transitions:
        if transition.is_pop or transition.target in declared:
            continue
        rule = model.rule(transition.rule)
        issues.append(
            Issue(
                'error',
                f"Rule '{transition.rule}' switches to undefined mode "
                f"'{transition.target}'",
                line_number=rule.line_number if rule else None,
                rule_name=transition.rule,
                kind='undefined-mode',
                suggestion=f"Declare the mode with 'mode {transition.target};'",
            )
        )

    pushes_default = any(
        transition.target == DEFAULT_MODE and transition.action.startswith('push')
        for transition in transitions
    )
    if not pushes_default:
        for transition in transitions:
            if transition.is_pop and transition.source == DEFAULT_MODE:
                rule = model.rule(transition.rule)
                issues.append(
                    Issue(
                        'error',
                        f"Rule '{transition.rule}' issues popMode from "
                        f'{DEFAULT_MODE}, where the mode stack is empty',
                        line_number=rule.line_number if rule else None,
                        rule_name=transition.rule,
                        kind='pop-from-default-mode',
                        suggestion='Move the rule into the mode it should leave',
                    )
                )

    targets = {transition.target for transition in transitions}
    for mode in custom:
        if not mode.rules:
            issues.append(
                Issue(
                    'warning',
                    f"Mode '{mode.name}' has no rules",
                    line_number=mode.line_number,
                    kind='empty-mode',
                    suggestion=f"Add lexer rules after 'mode {mode.name};'",
                )
            )
        if mode.name not in targets:
            issues.append(
                Issue(
                    'warning',
                    f"Mode '{mode.name}' has no entry points "
                    '(no pushMode or mode command targets it)',
                    line_number=mode.line_number,
                    kind='unreachable-mode',
                    suggestion=(
                        f'Add -> pushMode({mode.name}) to the rule that '
                        'should enter it'
                    ),
                )
            )
    return issues


def analyze_lexer_modes(model: GrammarModel, /) -> LexerModeReport:
    """List modes with their entry and exit points and basic consistency issues."""
    transitions = mode_transitions(model)
    report = LexerModeReport(modes=list(model.modes))
    for transition in transitions:
        if transition.is_pop:
            report.exit_points.append(ModeExit(transition.source, transition.rule))
        else:
            report.entry_points.append(
                ModeEntry(transition.target, transition.rule, transition.action)
            )
    report.issues = _mode_issues(model, transitions)
    logger.debug(
        'analyzed %d modes, %d transitions', len(model.modes), len(transitions)
    )
    return report


def _mode_graph(transitions: list[ModeTransition], /) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for transition in transitions:
        if transition.is_pop or transition.target == transition.source:
            continue
        targets = graph.setdefault(transition.source, [])
        if transition.target not in targets:
            targets.append(transition.target)
    return graph


def _cycle_issues(model: GrammarModel, graph: dict[str, list[str]], /) -> list[Issue]:
    issues: list[Issue] = []
    reported: set[frozenset[str]] = set()
    for mode in model.modes:
        cycle = find_cycle(graph, mode.name)
        if cycle is None or (members := frozenset(cycle)) in reported:
            continue
        reported.add(members)
        issues.append(
            Issue(
                'warning',
                f'Mode transition cycle: {" -> ".join(cycle)}',
                line_number=mode.line_number or None,
                kind='mode-cycle',
                suggestion=(
                    'Check that the cycle is intended; pushMode inside a cycle '
                    'grows the mode stack'
                ),
            )
        )
    return issues


def _balance_issues(
    model: GrammarModel, transitions: list[ModeTransition], /
) -> list[Issue]:
    issues: list[Issue] = []
    for mode in model.modes:
        if mode.name == DEFAULT_MODE:
            continue
        incoming = [t for t in transitions if t.target == mode.name]
        outgoing = [t for t in transitions if t.source == mode.name]
        if not incoming:
            continue
        pushed = any(t.action.startswith('pushMode') for t in incoming)
        pops = any(t.is_pop for t in outgoing)
        if pushed and not pops:
            issues.append(
                Issue(
                    'warning',
                    f"Mode '{mode.name}' is entered with pushMode but never pops",
                    line_number=mode.line_number,
                    kind='unbalanced-push',
                    suggestion=f"Add a rule with '-> popMode' to mode {mode.name}",
                )
            )
        elif not outgoing:
            issues.append(
                Issue(
                    'warning',
                    f"Mode '{mode.name}' has no exit; the lexer stays in it "
                    'until end of input',
                    line_number=mode.line_number,
                    kind='mode-without-exit',
                    suggestion='Add a rule that switches back with mode() or popMode',
                )
            )
    return issues


def _suggestions(issues: list[Issue], /) -> list[str]:
    kinds = {issue.kind for issue in issues}
    suggestions: list[str] = []
    if 'undefined-mode' in kinds:
        suggestions.append("Declare every transition target with 'mode NAME;'")
    if 'unreachable-mode' in kinds:
        suggestions.append(
            'Remove unreachable modes or add a pushMode/mode command that enters '
            'them'
        )
    if kinds & {'unbalanced-push', 'mode-without-exit'}:
        suggestions.append(
            'Give every pushed mode a popMode rule so the mode stack stays balanced'
        )
    if 'mode-cycle' in kinds:
        suggestions.append(
            'Prefer mode() over pushMode() for transitions that never return'
        )
    return suggestions


def analyze_mode_transitions(model: GrammarModel, /) -> ModeTransitionReport:
    """Build the mode transition graph and check it for structural problems."""
    transitions = mode_transitions(model)
    issues = _mode_issues(model, transitions)
    issues.extend(_cycle_issues(model, _mode_graph(transitions)))
    issues.extend(_balance_issues(model, transitions))
    return ModeTransitionReport(transitions, issues, _suggestions(issues))
