from __future__ import annotations

from typing import TYPE_CHECKING

from g4_grammar.ambiguity import (
    AmbiguityOptions,
    analyze_ambiguities,
    left_corner_graph,
)
from g4_grammar.scanner import scan

if TYPE_CHECKING:
    from g4_grammar.model import GrammarModel, Issue


def by_kind(issues: list[Issue], kind: str) -> list[Issue]:
    return [issue for issue in issues if issue.kind == kind]


class TestAlternatives:
    def test_identical_alternatives(self, ambiguous: GrammarModel) -> None:
        issues = analyze_ambiguities(ambiguous).issues
        (issue,) = by_kind(issues, 'identical-alternatives')
        assert issue.severity == 'error'
        assert issue.rule_name == 'dup'
        assert issue.message == "Rule 'dup' has identical alternatives 1 and 2: B C"

    def test_labels_do_not_make_alternatives_different(self) -> None:
        model = scan('grammar G;\nr : a=A # One | b=A # Two ;\nA : [a-z] ;')
        assert by_kind(analyze_ambiguities(model).issues, 'identical-alternatives')

    def test_overlapping_prefix(self, ambiguous: GrammarModel) -> None:
        (issue,) = by_kind(analyze_ambiguities(ambiguous).issues, 'overlapping-prefix')
        assert issue.rule_name == 'prefix'
        assert issue.message == (
            "Alternatives 1 and 2 of rule 'prefix' share the prefix: B C"
        )
        assert issue.suggestion == "Left-factor the common prefix 'B C'"

    def test_min_prefix_length(self, ambiguous: GrammarModel) -> None:
        options = AmbiguityOptions(min_prefix_length=3)
        issues = analyze_ambiguities(ambiguous, options).issues
        assert not by_kind(issues, 'overlapping-prefix')

    def test_ambiguous_optional(self, ambiguous: GrammarModel) -> None:
        (issue,) = by_kind(analyze_ambiguities(ambiguous).issues, 'ambiguous-optional')
        assert issue.rule_name == 'opt'

    def test_redundant_optional(self, ambiguous: GrammarModel) -> None:
        (issue,) = by_kind(analyze_ambiguities(ambiguous).issues, 'redundant-optional')
        assert issue.rule_name == 'redundant'
        assert issue.suggestion == 'Replace with B*'


class TestLeftRecursion:
    def test_left_corner_graph(self, ambiguous: GrammarModel) -> None:
        graph = left_corner_graph(ambiguous)
        assert graph['x'] == ['y']
        assert graph['y'] == ['x']
        assert graph['dup'] == []

    def test_hidden_left_recursion_reported_once(
        self, ambiguous: GrammarModel
    ) -> None:
        issues = by_kind(analyze_ambiguities(ambiguous).issues, 'hidden-left-recursion')
        assert [issue.message for issue in issues] == [
            'Hidden left recursion: x -> y -> x'
        ]

    def test_nullable_prefix(self) -> None:
        model = scan('grammar G;\na : B? b ;\nb : a C | C ;\nB : [b] ;\nC : [c] ;')
        issues = by_kind(analyze_ambiguities(model).issues, 'hidden-left-recursion')
        assert len(issues) == 1

    def test_direct_recursion_is_not_hidden(self, calc: GrammarModel) -> None:
        issues = analyze_ambiguities(calc).issues
        assert not by_kind(issues, 'hidden-left-recursion')


class TestLexerConflicts:
    def test_literal_shadowed_by_earlier_rule(self, ambiguous: GrammarModel) -> None:
        (issue,) = by_kind(analyze_ambiguities(ambiguous).issues, 'lexer-conflict')
        assert issue.rule_name == 'ID'
        assert issue.message == (
            "Lexer rules 'ID' and 'KW' conflict: 'if' is also matched by ID, "
            'which is declared first and wins on equal length'
        )

    def test_same_literal(self) -> None:
        model = scan("lexer grammar L;\nA : 'x' ;\nB : 'x' ;")
        (issue,) = by_kind(analyze_ambiguities(model).issues, 'lexer-conflict')
        assert issue.message.endswith("both match the literal 'x'")

    def test_keyword_before_identifier_is_fine(self) -> None:
        model = scan("lexer grammar L;\nIF : 'if' ;\nID : [a-z]+ ;")
        assert not by_kind(analyze_ambiguities(model).issues, 'lexer-conflict')

    def test_overlapping_first_characters(self, decl: GrammarModel) -> None:
        (issue,) = by_kind(analyze_ambiguities(decl).issues, 'lexer-conflict')
        assert issue.message.startswith("Lexer rules 'TYPE' and 'ID' conflict")

    def test_rules_in_different_modes(self, tags: GrammarModel) -> None:
        assert not by_kind(analyze_ambiguities(tags).issues, 'lexer-conflict')

    def test_unterminated_escape_in_set(self) -> None:
        model = scan("lexer grammar L;\nA : [a\\u{41] ;\nB : [ab]+ ;")
        assert not by_kind(analyze_ambiguities(model).issues, 'lexer-conflict')


class TestReport:
    def test_summary(self, ambiguous: GrammarModel) -> None:
        report = analyze_ambiguities(ambiguous)
        assert not report.success
        assert report.summary.errors == 2
        assert report.summary.rules_analyzed == len(ambiguous.rules)

    def test_checks_can_be_disabled(self, ambiguous: GrammarModel) -> None:
        options = AmbiguityOptions(
            check_identical_alternatives=False,
            check_overlapping_prefixes=False,
            check_ambiguous_optionals=False,
            check_left_recursion=False,
            check_lexer_conflicts=False,
        )
        report = analyze_ambiguities(ambiguous, options)
        assert report.success
        assert report.issues == []

    def test_to_json(self, calc: GrammarModel) -> None:
        data = analyze_ambiguities(calc).to_json()
        assert data['success']
        assert data['summary']['rules_analyzed'] == 7
