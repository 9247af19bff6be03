from __future__ import annotations

from typing import TYPE_CHECKING

from g4_grammar.modes import (
    POP_TARGET,
    ModeEntry,
    ModeExit,
    ModeTransition,
    analyze_lexer_modes,
    analyze_mode_transitions,
    mode_transitions,
)
from g4_grammar.scanner import scan

if TYPE_CHECKING:
    from g4_grammar.model import GrammarModel

BROKEN = """lexer grammar Broken;
A : 'a' -> pushMode(NOWHERE) ;
B : 'b' -> popMode ;
C : '"' -> pushMode(STR) ;
mode STR;
D : 'x' ;
mode EMPTY;
"""

CYCLE = """lexer grammar Cycle;
A : 'a' -> mode(ONE) ;
mode ONE;
B : 'b' -> mode(TWO) ;
mode TWO;
C : 'c' -> mode(ONE) ;
"""


def kinds(model: GrammarModel) -> list[str | None]:
    return [issue.kind for issue in analyze_mode_transitions(model).issues]


class TestModeTransitions:
    def test_push_and_pop(self, tags: GrammarModel) -> None:
        assert mode_transitions(tags) == [
            ModeTransition('DEFAULT_MODE', 'INSIDE', 'pushMode(INSIDE)', 'OPEN'),
            ModeTransition('INSIDE', POP_TARGET, 'popMode', 'CLOSE'),
        ]

    def test_other_commands_are_ignored(self) -> None:
        model = scan("lexer grammar L;\nWS : ' ' -> skip, channel(HIDDEN) ;")
        assert mode_transitions(model) == []

    def test_mode_names_in_actions_are_ignored(self) -> None:
        model = scan("lexer grammar L;\nA : 'a' {pushMode(X);} ;")
        assert mode_transitions(model) == []


class TestLexerModes:
    def test_modes(self, tags: GrammarModel) -> None:
        report = analyze_lexer_modes(tags)
        assert [(mode.name, mode.rules) for mode in report.modes] == [
            ('DEFAULT_MODE', ['OPEN', 'TEXT']),
            ('INSIDE', ['CLOSE', 'NAME', 'SPACE']),
        ]
        assert report.modes[1].line_number == 7

    def test_entry_and_exit_points(self, tags: GrammarModel) -> None:
        report = analyze_lexer_modes(tags)
        assert report.entry_points == [
            ModeEntry('INSIDE', 'OPEN', 'pushMode(INSIDE)')
        ]
        assert report.exit_points == [ModeExit('INSIDE', 'CLOSE')]
        assert report.issues == []
        assert report.success

    def test_consistency_issues(self) -> None:
        report = analyze_lexer_modes(scan(BROKEN))
        assert [issue.kind for issue in report.issues] == [
            'undefined-mode',
            'pop-from-default-mode',
            'empty-mode',
            'unreachable-mode',
        ]
        assert not report.success
        assert report.issues[0].message == (
            "Rule 'A' switches to undefined mode 'NOWHERE'"
        )
        assert report.issues[0].line_number == 2

    def test_pushing_default_mode_allows_pop(self) -> None:
        model = scan(
            "lexer grammar L;\nA : 'a' -> pushMode(DEFAULT_MODE) ;\n"
            "B : 'b' -> popMode ;"
        )
        assert analyze_lexer_modes(model).issues == []

    def test_modes_outside_lexer_grammar(self) -> None:
        model = scan("grammar G;\nr : A ;\nA : 'a' ;\nmode X;\nB : 'b' ;")
        (issue, *_) = analyze_lexer_modes(model).issues
        assert issue.kind == 'mode-outside-lexer-grammar'
        assert issue.severity == 'error'
        assert issue.line_number == 4

    def test_to_json(self, tags: GrammarModel) -> None:
        data = analyze_lexer_modes(tags).to_json()
        assert data['entry_points'] == [
            {'mode': 'INSIDE', 'rule': 'OPEN', 'action': 'pushMode(INSIDE)'}
        ]
        assert data['modes'][1] == {
            'name': 'INSIDE',
            'line': 7,
            'rules': ['CLOSE', 'NAME', 'SPACE'],
        }


class TestModeTransitionAnalysis:
    def test_balanced(self, tags: GrammarModel) -> None:
        report = analyze_mode_transitions(tags)
        assert report.success
        assert report.issues == []
        assert report.suggestions == []

    def test_unbalanced_push(self) -> None:
        report = analyze_mode_transitions(scan(BROKEN))
        assert 'unbalanced-push' in [issue.kind for issue in report.issues]
        assert report.suggestions == [
            "Declare every transition target with 'mode NAME;'",
            'Remove unreachable modes or add a pushMode/mode command that enters '
            'them',
            'Give every pushed mode a popMode rule so the mode stack stays balanced',
        ]

    def test_cycle_reported_once(self) -> None:
        report = analyze_mode_transitions(scan(CYCLE))
        assert [issue.message for issue in report.issues] == [
            'Mode transition cycle: ONE -> TWO -> ONE'
        ]
        assert report.suggestions == [
            'Prefer mode() over pushMode() for transitions that never return'
        ]

    def test_self_transition_is_not_a_cycle(self) -> None:
        model = scan(
            "lexer grammar L;\nA : 'a' -> pushMode(M) ;\nmode M;\n"
            "B : 'b' -> mode(M) ;\nC : 'c' -> popMode ;"
        )
        assert kinds(model) == []

    def test_mode_without_exit(self) -> None:
        model = scan("lexer grammar L;\nA : 'a' -> mode(M) ;\nmode M;\nB : 'b' ;")
        (issue,) = analyze_mode_transitions(model).issues
        assert issue.kind == 'mode-without-exit'
        assert issue.message == (
            "Mode 'M' has no exit; the lexer stays in it until end of input"
        )

    def test_to_json(self, tags: GrammarModel) -> None:
        data = analyze_mode_transitions(tags).to_json()
        assert data['transitions'][1] == {
            'source': 'INSIDE',
            'target': POP_TARGET,
            'action': 'popMode',
            'rule': 'CLOSE',
        }
