from __future__ import annotations

from textwrap import dedent
from typing import TYPE_CHECKING

import pytest

from g4_grammar.common import DEFAULT_MODE
from g4_grammar.scanner import extract_references, scan

if TYPE_CHECKING:
    from g4_grammar.model import GrammarModel


def kinds(model: GrammarModel) -> list[str | None]:
    return [issue.kind for issue in model.issues]


class TestDeclaration:
    def test_combined_grammar(self, calc: GrammarModel) -> None:
        assert calc.name == 'Calc'
        assert calc.kind == 'combined'

    def test_lexer_grammar(self, tags: GrammarModel) -> None:
        assert tags.name == 'Tags'
        assert tags.kind == 'lexer'

    def test_parser_grammar(self) -> None:
        model = scan('parser grammar P;\nr : A ;')
        assert model.kind == 'parser'

    def test_missing_declaration(self) -> None:
        model = scan("r : 'x' ;")
        assert model.name == ''
        assert 'missing-declaration' in kinds(model)
        issue = next(i for i in model.issues if i.kind == 'missing-declaration')
        assert issue.severity == 'error'
        assert issue.message == 'Missing grammar declaration'

    def test_rejects_non_string_source(self) -> None:
        with pytest.raises(TypeError, match='grammar source must be str'):
            scan(b'grammar G;')  # pyright: ignore[reportArgumentType]


class TestRules:
    def test_rule_names_in_source_order(self, calc: GrammarModel) -> None:
        assert calc.rule_names() == [
            'prog',
            'stat',
            'expr',
            'ID',
            'INT',
            'NEWLINE',
            'WS',
        ]

    def test_line_numbers(self, calc: GrammarModel) -> None:
        stat = calc.rule('stat')
        assert stat is not None
        assert stat.line_number == 5
        assert stat.end_line_number == 7
        assert stat.line_count == 3

    def test_references_skip_literals(self, calc: GrammarModel) -> None:
        stat = calc.rule('stat')
        assert stat is not None
        assert stat.referenced_rules == ('expr', 'NEWLINE', 'ID')

    def test_lexer_rules_get_default_mode(self, calc: GrammarModel) -> None:
        assert [rule.mode for rule in calc.lexer_rules()] == [DEFAULT_MODE] * 4
        assert all(rule.mode is None for rule in calc.parser_rules())

    def test_lexer_commands(self, calc: GrammarModel) -> None:
        ws = calc.rule('WS')
        assert ws is not None
        assert ws.pattern == '[ \\t]+'
        assert ws.commands == [('skip', None)]

    def test_fragment(self) -> None:
        model = scan('lexer grammar L;\nINT : DIGIT+ ;\nfragment DIGIT : [0-9] ;')
        digit = model.rule('DIGIT')
        assert digit is not None
        assert digit.is_fragment

    def test_several_rules_on_one_line(self) -> None:
        model = scan("grammar G; a : B ; B : 'b' ;")
        assert model.rule_names() == ['a', 'B']

    def test_name_and_colon_on_separate_lines(self) -> None:
        model = scan("grammar G;\nr\n  : A\n  ;\nA : 'a' ;")
        rule = model.rule('r')
        assert rule is not None
        assert rule.line_number == 2
        assert rule.referenced_rules == ('A',)

    def test_rule_with_return_values(self) -> None:
        model = scan("grammar G;\nr returns [int v] : A ;\nA : 'a' ;")
        rule = model.rule('r')
        assert rule is not None
        assert rule.referenced_rules == ('A',)

    def test_semicolon_inside_literal_and_action(self) -> None:
        model = scan("grammar G;\nr : ';' {x = 1;} A ;\nA : 'a' ;")
        rule = model.rule('r')
        assert rule is not None
        assert rule.referenced_rules == ('A',)
        assert model.rule('A') is not None

    def test_comments_are_ignored(self) -> None:
        source = dedent(
            """
            // line comment mentioning rule : X ;
            grammar G; /* block
            comment : Y ; */
            r : 'x' ; // trailing
            """
        )
        model = scan(source)
        assert model.name == 'G'
        assert model.rule_names() == ['r']


class TestBlocks:
    def test_options(self) -> None:
        model = scan(
            'grammar G;\noptions { tokenVocab = Lex; superClass=Base; }\nr : A ;'
        )
        assert model.options == {'tokenVocab': 'Lex', 'superClass': 'Base'}

    def test_tokens_block_defines_names(self) -> None:
        model = scan('grammar G;\ntokens { FOO, BAR }\nr : FOO BAR ;')
        assert model.tokens == ['FOO', 'BAR']
        assert 'undefined-reference' not in kinds(model)

    def test_imports(self) -> None:
        model = scan('grammar G;\nimport A, B=C;\nr : X ;')
        assert model.imports == ['A', 'C']

    def test_named_action_is_skipped(self) -> None:
        model = scan(
            "grammar G;\n@header {\n  package x;\n}\nr : 'x' ;"
        )
        assert model.rule_names() == ['r']
        assert 'unparsed-content' not in kinds(model)

    def test_unterminated_block(self) -> None:
        model = scan('grammar G;\noptions { tokenVocab = Lex;\n')
        assert 'unterminated-block' in kinds(model)


class TestModes:
    def test_modes_and_membership(self, tags: GrammarModel) -> None:
        assert [mode.name for mode in tags.modes] == [DEFAULT_MODE, 'INSIDE']
        inside = tags.mode('INSIDE')
        assert inside is not None
        assert inside.line_number == 7
        assert inside.rules == ['CLOSE', 'NAME', 'SPACE']

    def test_rule_mode(self, tags: GrammarModel) -> None:
        close = tags.rule('CLOSE')
        assert close is not None
        assert close.mode == 'INSIDE'


class TestMalformedInput:
    def test_missing_terminator(self) -> None:
        model = scan('grammar G;\nr : A\n')
        issue = next(i for i in model.issues if i.kind == 'missing-terminator')
        assert issue.severity == 'error'
        assert issue.message == "Rule 'r' is missing a terminating ';'"
        assert model.rule('r') is not None

    def test_rule_line_cap(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr('g4_grammar.scanner.MAX_RULE_LINES', 3)
        model = scan('grammar G;\nr : A\n  | B\n  | C\n  | D ;\ns : E ;\n')
        issue = next(i for i in model.issues if i.kind == 'missing-terminator')
        assert issue.message == (
            "Rule 'r' appears to be missing a semicolon or is extremely long "
            '(>3 lines)'
        )
        assert issue.line_number == 2
        assert model.rule_names() == ['r', 's']
        assert 'unparsed-content' in kinds(model)

    def test_unrecognized_content(self) -> None:
        model = scan('grammar G;\n}}}\n')
        assert 'unparsed-content' in kinds(model)

    def test_name_without_colon(self) -> None:
        model = scan("grammar G;\nr\ngrammar H;\n")
        assert 'malformed-rule' in kinds(model)


class TestExtractReferences:
    @pytest.mark.parametrize(
        ('definition', 'expected'),
        [
            ("r : A 'lit' b ;", ('A', 'b')),
            ('r : left=term (op=PLUS right=term)* ;', ('term', 'PLUS')),
            ('r : A {action(B);} C ;', ('A', 'C')),
            ('r : a # Labelled | b # Other ;', ('a', 'b')),
            ('R : [a-z]+ -> channel(HIDDEN) ;', ()),
            ('r : A A A ;', ('A',)),
        ],
    )
    def test_extract_references(
        self, definition: str, expected: tuple[str, ...]
    ) -> None:
        assert extract_references(definition) == expected
