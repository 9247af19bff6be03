from __future__ import annotations

from typing import TYPE_CHECKING

from g4_grammar.imports import (
    load_grammar,
    merge_models,
    resolve_import_path,
    token_vocab,
)
from g4_grammar.model import Issue
from g4_grammar.scanner import scan

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

COMMON = "lexer grammar Common;\nID : [a-z]+ ;\nWS : [ ]+ -> skip ;\n"
MAIN = 'grammar Main;\nimport Common;\nr : ID ;\n'


def kinds(issues: list[Issue]) -> list[str | None]:
    return [issue.kind for issue in issues]


class TestMergeModels:
    def test_first_definition_wins(self) -> None:
        main = scan("grammar Main;\nr : ID ;\nID : [A-Z]+ ;")
        common = scan(COMMON)
        merged = merge_models(main, [common])
        assert merged.rule_names() == ['r', 'ID', 'WS']
        rule = merged.rule('ID')
        assert rule is not None
        assert '[A-Z]' in rule.definition

    def test_inputs_are_not_modified(self) -> None:
        main = scan(MAIN)
        merge_models(main, [scan(COMMON)])
        assert main.rule_names() == ['r']

    def test_imported_issues_are_prefixed(self) -> None:
        common = scan(COMMON)
        common.issues.append(Issue('warning', 'Something odd', kind='odd'))
        merged = merge_models(scan(MAIN), [common])
        assert merged.issues[-1].message == '[Common] Something odd'

    def test_modes_are_merged(self) -> None:
        lexer = scan(
            "lexer grammar Tags;\nA : 'a' -> pushMode(M) ;\n"
            "mode M;\nB : 'b' -> popMode ;"
        )
        merged = merge_models(scan('grammar Main;\nimport Tags;\nr : A B ;'), [lexer])
        assert [(mode.name, mode.rules) for mode in merged.modes] == [
            ('DEFAULT_MODE', ['A']),
            ('M', ['B']),
        ]


class TestResolveImportPath:
    def test_beside_current_file(self, grammar_file: Callable[..., Path]) -> None:
        common = grammar_file(COMMON, 'Common.g4')
        main = grammar_file(MAIN, 'Main.g4')
        assert resolve_import_path('Common', main) == common

    def test_base_path_candidates(self, tmp_path: Path) -> None:
        main = tmp_path / 'src' / 'Main.g4'
        main.parent.mkdir()
        main.write_text(MAIN, encoding='utf-8')
        library = tmp_path / 'lib'
        nested = library / 'imports' / 'Common.g4'
        nested.parent.mkdir(parents=True)
        nested.write_text(COMMON, encoding='utf-8')

        assert resolve_import_path('Common', main) is None
        assert resolve_import_path('Common', main, library) == nested

    def test_missing(self, grammar_file: Callable[..., Path]) -> None:
        assert resolve_import_path('Nope', grammar_file(MAIN)) is None


class TestLoadGrammar:
    def test_imports_resolve_references(
        self, grammar_file: Callable[..., Path]
    ) -> None:
        grammar_file(COMMON, 'Common.g4')
        merged = load_grammar(grammar_file(MAIN, 'Main.g4'))
        assert merged.name == 'Main'
        assert merged.rule_names() == ['r', 'ID', 'WS']
        assert 'undefined-reference' not in kinds(merged.issues)

    def test_token_vocab(self, grammar_file: Callable[..., Path]) -> None:
        grammar_file('lexer grammar CalcLexer;\nNUM : [0-9]+ ;\n', 'CalcLexer.g4')
        parser = grammar_file(
            'parser grammar CalcParser;\noptions { tokenVocab = CalcLexer; }\n'
            'e : NUM ;\n',
            'CalcParser.g4',
        )
        merged = load_grammar(parser)
        assert merged.rule_names() == ['e', 'NUM']
        assert 'undefined-reference' not in kinds(merged.issues)

    def test_unresolved_import(self, grammar_file: Callable[..., Path]) -> None:
        merged = load_grammar(
            grammar_file('grammar Main;\nimport Missing;\nr : X ;\n', 'Main.g4')
        )
        assert merged.issues[0].message == 'Cannot resolve import: Missing'
        assert merged.issues[0].kind == 'unresolved-import'
        assert 'undefined-reference' in kinds(merged.issues)

    def test_circular_import(self, grammar_file: Callable[..., Path]) -> None:
        grammar_file("grammar B;\nimport A;\nb : 'b' ;\n", 'B.g4')
        merged = load_grammar(grammar_file("grammar A;\nimport B;\na : b ;\n", 'A.g4'))
        assert 'circular-import' in kinds(merged.issues)
        assert merged.rule_names() == ['a', 'b']

    def test_unreadable_file(self, tmp_path: Path) -> None:
        merged = load_grammar(tmp_path / 'Missing.g4')
        assert merged.name == 'Missing'
        assert kinds(merged.issues) == ['unreadable-import']

    def test_undecodable_import(
        self, grammar_file: Callable[..., Path], tmp_path: Path
    ) -> None:
        (tmp_path / 'Common.g4').write_bytes(b"lexer grammar Common;\nID : '\xff' ;\n")
        merged = load_grammar(grammar_file(MAIN, 'Main.g4'))
        (unreadable,) = [
            issue for issue in merged.issues if issue.kind == 'unreadable-import'
        ]
        assert unreadable.severity == 'error'
        assert unreadable.message.startswith('[Common] Failed to read file: ')
        assert 'undefined-reference' in kinds(merged.issues)


def test_token_vocab_option() -> None:
    assert token_vocab(scan("grammar G;\noptions { tokenVocab = 'Lex'; }")) == 'Lex'
    assert token_vocab(scan('grammar G;')) is None
