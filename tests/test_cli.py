from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from g4_grammar import schema
from g4_grammar.cli import app

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from click.testing import Result

DUPLICATE = "grammar Dup;\nr : A ;\nr : A ;\nA : 'a' ;\n"


@pytest.fixture(scope='module')
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def calc_file(grammar_file: Callable[..., Path], calc_source: str) -> Path:
    return grammar_file(calc_source, 'Calc.g4')


@pytest.fixture
def ambiguous_file(grammar_file: Callable[..., Path], ambiguous_source: str) -> Path:
    return grammar_file(ambiguous_source, 'Amb.g4')


@pytest.fixture
def tags_file(grammar_file: Callable[..., Path], modes_source: str) -> Path:
    return grammar_file(modes_source, 'Tags.g4')


@pytest.fixture
def invoke(runner: CliRunner) -> Callable[..., Result]:
    def run(*args: str | Path) -> Result:
        return runner.invoke(app, [str(arg) for arg in args])

    return run


# ============================================================================
# analyze / validate
# ============================================================================


class TestAnalyze:
    def test_text(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('analyze', calc_file)
        assert result.exit_code == 0
        assert 'Grammar: Calc (combined)' in result.stdout
        assert '  - expr (parser)' in result.stdout

    def test_json_matches_schema(
        self, invoke: Callable[..., Result], calc_file: Path
    ) -> None:
        result = invoke('analyze', calc_file, '--json')
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data['$schema'] == schema.SCHEMA_REF
        assert data['name'] == 'Calc'
        schema.validate_report(data)

    def test_summary(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('analyze', calc_file, '--summary')
        assert 'Grammar Summary: Calc' in result.stdout

    def test_markdown(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('analyze', calc_file, '--markdown')
        assert '## Parser Rules' in result.stdout

    def test_errors_set_exit_code(
        self, invoke: Callable[..., Result], grammar_file: Callable[..., Path]
    ) -> None:
        result = invoke('analyze', grammar_file(DUPLICATE))
        assert result.exit_code == 1

    def test_missing_file(self, invoke: Callable[..., Result], tmp_path: Path) -> None:
        result = invoke('analyze', tmp_path / 'Missing.g4')
        assert result.exit_code == 2

    def test_imports(
        self, invoke: Callable[..., Result], grammar_file: Callable[..., Path]
    ) -> None:
        grammar_file('lexer grammar Common;\nID : [a-z]+ ;\n', 'Common.g4')
        main = grammar_file('grammar Main;\nimport Common;\nr : ID ;\n', 'Main.g4')
        result = invoke('analyze', main, '--json', '--imports')
        data = json.loads(result.stdout)
        assert [rule['name'] for rule in data['rules']] == ['r', 'ID']

    def test_unknown_log_level(
        self, invoke: Callable[..., Result], calc_file: Path
    ) -> None:
        result = invoke('--log-level', 'chatty', 'analyze', calc_file)
        assert result.exit_code == 2


class TestValidate:
    def test_json(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('validate', calc_file, '--json')
        assert result.exit_code == 0
        kinds = [issue.get('kind') for issue in json.loads(result.stdout)]
        assert 'left-recursion' in kinds

    def test_aggregate(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('validate', calc_file, '--aggregate', '--json')
        assert json.loads(result.stdout)['summary'].startswith('Total: ')

    def test_incomplete_parsing(
        self, invoke: Callable[..., Result], grammar_file: Callable[..., Path]
    ) -> None:
        path = grammar_file("lexer grammar L;\nREST : ~[\\n]+ ;\n")
        plain = json.loads(invoke('validate', path, '--json').stdout)
        assert 'incomplete-parsing' not in [issue.get('kind') for issue in plain]
        result = invoke('validate', path, '--incomplete', '--json')
        assert result.exit_code == 0
        kinds = [issue.get('kind') for issue in json.loads(result.stdout)]
        assert 'incomplete-parsing' in kinds

    def test_duplicate_rule(
        self, invoke: Callable[..., Result], grammar_file: Callable[..., Path]
    ) -> None:
        result = invoke('validate', grammar_file(DUPLICATE))
        assert result.exit_code == 1
        assert 'ERROR' in result.stdout


# ============================================================================
# Analysis commands
# ============================================================================


class TestAmbiguities:
    def test_errors(
        self, invoke: Callable[..., Result], ambiguous_file: Path
    ) -> None:
        result = invoke('ambiguities', ambiguous_file)
        assert result.exit_code == 1
        assert '# Ambiguity Analysis' in result.stdout

    def test_checks_disabled(
        self, invoke: Callable[..., Result], ambiguous_file: Path
    ) -> None:
        result = invoke(
            'ambiguities',
            ambiguous_file,
            '--no-identical',
            '--no-prefixes',
            '--no-optionals',
            '--no-left-recursion',
            '--no-lexer-conflicts',
            '--json',
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)['issues'] == []


class TestTokens:
    def test_json(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('tokens', calc_file, 'x = 3', '--json')
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        types = [token['type'] for token in data['tokens'] if not token['skipped']]
        assert types == ['ID', "'='", 'INT']

    def test_table(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('tokens', calc_file, 'x = 3')
        assert result.exit_code == 0
        assert 'Tokenized 5 characters' in result.stdout

    def test_rule_filter(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('tokens', calc_file, '42', '-r', 'INT', '--json')
        data = json.loads(result.stdout)
        assert [token['type'] for token in data['tokens']] == ['INT']

    def test_error(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('tokens', calc_file, 'x @ 3')
        assert result.exit_code == 1


class TestTestRule:
    def test_match(
        self,
        invoke: Callable[..., Result],
        grammar_file: Callable[..., Path],
        decl_source: str,
    ) -> None:
        result = invoke('test-rule', grammar_file(decl_source), 'decl', 'int x;')
        assert result.exit_code == 0
        assert "Input matches rule 'decl'" in result.stdout

    def test_no_match(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('test-rule', calc_file, 'stat', '= 3', '--json')
        assert result.exit_code == 1
        assert not json.loads(result.stdout)['matched']


class TestMetrics:
    def test_json(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('metrics', calc_file, '--json')
        assert json.loads(result.stdout)['size']['total_rules'] == 7

    def test_report(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('metrics', calc_file)
        assert '# Grammar Metrics: Calc' in result.stdout

    def test_rule(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('metrics', calc_file, '--rule', 'expr', '--json')
        assert json.loads(result.stdout)['alternatives'] == 5

    def test_unknown_rule(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('metrics', calc_file, '--rule', 'nope')
        assert result.exit_code == 1


class TestOtherReports:
    def test_redos(
        self, invoke: Callable[..., Result], grammar_file: Callable[..., Path]
    ) -> None:
        result = invoke('redos', grammar_file("lexer grammar L;\nA : ('a'+)+ ;\n"))
        assert result.exit_code == 1
        assert '# ReDoS Vulnerability Analysis' in result.stdout

    def test_modes(self, invoke: Callable[..., Result], tags_file: Path) -> None:
        result = invoke('modes', tags_file)
        assert result.exit_code == 0
        assert '### INSIDE (line 7)' in result.stdout

    def test_mode_transitions(
        self, invoke: Callable[..., Result], tags_file: Path
    ) -> None:
        result = invoke('modes', tags_file, '--transitions', '--json')
        data = json.loads(result.stdout)
        assert [item['rule'] for item in data['transitions']] == ['OPEN', 'CLOSE']

    def test_bottlenecks(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('bottlenecks', calc_file, '--json')
        assert result.exit_code == 0
        assert json.loads(result.stdout)['metrics']['total_bottlenecks'] == 0

    def test_style(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('style', calc_file)
        assert result.exit_code == 0
        assert '100/100' in result.stdout


class TestCompare:
    def test_same_file(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('compare', calc_file, calc_file)
        assert result.exit_code == 0
        assert 'The grammars define the same rules' in result.stdout

    def test_json(
        self,
        invoke: Callable[..., Result],
        calc_file: Path,
        grammar_file: Callable[..., Path],
    ) -> None:
        other = grammar_file(
            "grammar Calc;\nprog : ID+ EOF ;\nID : [a-z]+ ;\n", 'Other.g4'
        )
        data = json.loads(invoke('compare', calc_file, other, '--json').stdout)
        assert data['added'] == []
        assert data['modified'] == ['prog']
        assert 'expr' in data['removed']
        assert data['second']['total_rules'] == 2


class TestOrderAndFind:
    def test_order(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('order', calc_file, '--strategy', 'type', '--json')
        assert json.loads(result.stdout)['rules'][:3] == ['prog', 'stat', 'expr']

    def test_unknown_anchor(
        self, invoke: Callable[..., Result], calc_file: Path
    ) -> None:
        result = invoke('order', calc_file, '--anchor', 'nope')
        assert result.exit_code == 1

    def test_invalid_strategy(
        self, invoke: Callable[..., Result], calc_file: Path
    ) -> None:
        result = invoke('order', calc_file, '--strategy', 'random')
        assert result.exit_code == 2

    def test_find(self, invoke: Callable[..., Result], calc_file: Path) -> None:
        result = invoke('find', calc_file, '*T', '--mode', 'wildcard')
        assert result.exit_code == 0
        assert 'Found 1 rule(s)' in result.stdout
        assert 'INT (lexer, line' in result.stdout

    def test_find_invalid_regex(
        self, invoke: Callable[..., Result], calc_file: Path
    ) -> None:
        result = invoke('find', calc_file, '(', '--mode', 'regex')
        assert result.exit_code == 1


# ============================================================================
# check-report
# ============================================================================


class TestCheckReport:
    def test_valid_report(
        self, invoke: Callable[..., Result], calc_file: Path, tmp_path: Path
    ) -> None:
        report = tmp_path / 'calc.json'
        report.write_text(invoke('analyze', calc_file, '--json').stdout)
        result = invoke('check-report', report)
        assert result.exit_code == 0
        assert '1 report(s) valid' in result.stdout

    def test_invalid_report(
        self, invoke: Callable[..., Result], tmp_path: Path
    ) -> None:
        report = tmp_path / 'bad.json'
        report.write_text(json.dumps({'$schema': schema.SCHEMA_REF, 'name': 'X'}))
        result = invoke('check-report', report)
        assert result.exit_code == 1
