from __future__ import annotations

import json
import logging
from enum import StrEnum
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING, Annotated, Final

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from g4_grammar import reporting, rule_matcher, schema
from g4_grammar.ambiguity import AmbiguityOptions, analyze_ambiguities
from g4_grammar.bottlenecks import analyze_bottlenecks
from g4_grammar.common import DEFAULT_MIN_PREFIX_LENGTH
from g4_grammar.imports import load_grammar
from g4_grammar.metrics import compute_metrics, rule_statistics
from g4_grammar.model import find_rules
from g4_grammar.modes import analyze_lexer_modes, analyze_mode_transitions
from g4_grammar.ordering import order_rules
from g4_grammar.quality import (
    aggregate_issues,
    check_style,
    compare_models,
    detect_incomplete_parsing,
)
from g4_grammar.redos import detect_redos
from g4_grammar.scanner import scan
from g4_grammar.tokenizer import tokenize

if TYPE_CHECKING:
    from collections.abc import Iterable

    from g4_grammar.model import GrammarModel, Issue

app = typer.Typer(
    help='Static analysis and simulation of ANTLR4-style grammars.',
    no_args_is_help=True,
)
console = Console()

logger = logging.getLogger(__name__)

_SEVERITY_STYLES: Final = {'error': 'bold red', 'warning': 'yellow', 'info': 'cyan'}


class Strategy(StrEnum):
    alphabetical = 'alphabetical'
    type = 'type'
    dependency = 'dependency'
    usage = 'usage'


class MatchMode(StrEnum):
    exact = 'exact'
    regex = 'regex'
    wildcard = 'wildcard'
    partial = 'partial'


GrammarFile = Annotated[
    Path,
    typer.Argument(
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
        help='Grammar file (.g4) to analyze.',
    ),
]
JsonFlag = Annotated[
    bool, typer.Option('--json', help='Print the result as JSON.')
]
ImportsFlag = Annotated[
    bool,
    typer.Option(
        '--imports/--no-imports',
        help='Resolve import statements and tokenVocab relative to the file.',
    ),
]


@app.callback()
def _configure(
    *,
    verbose: Annotated[
        bool, typer.Option('--verbose', '-v', help='Log debug messages.')
    ] = False,
    log_level: Annotated[
        str,
        typer.Option(envvar='G4_GRAMMAR_LOG_LEVEL', help='Log level name.'),
    ] = 'WARNING',
) -> None:
    level = 'DEBUG' if verbose else log_level.upper()
    if level not in logging.getLevelNamesMapping():
        raise typer.BadParameter(f'Unknown log level: {log_level}')
    logging.basicConfig(
        level=level,
        format='%(message)s',
        datefmt='[%X]',
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(path: Path, *, imports: bool = False) -> GrammarModel:
    if imports:
        return load_grammar(path)
    try:
        source = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise typer.BadParameter(f'Cannot read {path}: {e}') from e
    return scan(source)


def _echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _print_issues(issues: Iterable[Issue]) -> None:
    for issue in issues:
        line = Text.assemble(
            (f'{issue.severity.upper():<7}', _SEVERITY_STYLES[issue.severity]),
            ' ',
            issue.message,
        )
        if issue.line_number:
            line.append(f' (line {issue.line_number})', style='dim')
        console.print(line)
        if issue.suggestion:
            console.print(Text(f'        💡 {issue.suggestion}', style='dim'))


def _print_report(text: str) -> None:
    console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def _fail_on_errors(issues: Iterable[Issue]) -> None:
    if any(issue.severity == 'error' for issue in issues):
        raise typer.Exit(code=1)


@app.command()
def analyze(
    file: GrammarFile,
    *,
    as_json: JsonFlag = False,
    markdown: Annotated[
        bool, typer.Option('--markdown', help='Print markdown documentation.')
    ] = False,
    summary: Annotated[
        bool, typer.Option('--summary', help='Print a short summary.')
    ] = False,
    imports: ImportsFlag = False,
) -> None:
    """Scan a grammar and list its rules, options and issues."""
    model = _load(file, imports=imports)
    if as_json:
        _echo_json({'$schema': schema.SCHEMA_REF, **model.to_json()})
    elif markdown:
        _print_report(reporting.export_markdown(model))
    elif summary:
        _print_report(reporting.generate_summary(model))
    else:
        _print_report(reporting.format_model(model))
    _fail_on_errors(model.issues)


@app.command()
def validate(
    file: GrammarFile,
    *,
    as_json: JsonFlag = False,
    aggregate: Annotated[
        bool, typer.Option('--aggregate', help='Group issues by category.')
    ] = False,
    incomplete: Annotated[
        bool,
        typer.Option(
            '--incomplete', help='Also flag rules that skip over unparsed input.'
        ),
    ] = False,
    imports: ImportsFlag = False,
) -> None:
    """Report undefined, unused and duplicate rules and left recursion."""
    model = _load(file, imports=imports)
    issues = list(model.issues)
    if incomplete:
        issues.extend(found.to_issue() for found in detect_incomplete_parsing(model))
    if aggregate:
        grouped = aggregate_issues(issues)
        if as_json:
            _echo_json(grouped.to_json())
        else:
            console.print(grouped.summary, markup=False)
            for group in grouped.groups:
                console.print(
                    Text(f'{group.category}: {group.count}', style='bold'),
                )
                for name, count in group.top_items:
                    console.print(f'  - {name} ({count})', markup=False)
    elif as_json:
        _echo_json([issue.to_json() for issue in issues])
    elif issues:
        _print_issues(issues)
    else:
        console.print('✅ No issues found.')
    _fail_on_errors(issues)


@app.command()
def ambiguities(  # noqa: PLR0913
    file: GrammarFile,
    *,
    as_json: JsonFlag = False,
    identical: Annotated[
        bool, typer.Option(help='Check for identical alternatives.')
    ] = True,
    prefixes: Annotated[
        bool, typer.Option(help='Check for alternatives sharing a prefix.')
    ] = True,
    optionals: Annotated[
        bool, typer.Option(help="Check for ambiguous 'X? X' patterns.")
    ] = True,
    left_recursion: Annotated[
        bool, typer.Option(help='Check for hidden left recursion.')
    ] = True,
    lexer_conflicts: Annotated[
        bool, typer.Option(help='Check for conflicting lexer rules.')
    ] = True,
    min_prefix: Annotated[
        int, typer.Option(min=1, help='Shortest shared prefix to report.')
    ] = DEFAULT_MIN_PREFIX_LENGTH,
) -> None:
    """Look for alternatives and lexer rules that can match the same input."""
    options = AmbiguityOptions(
        check_identical_alternatives=identical,
        check_overlapping_prefixes=prefixes,
        check_ambiguous_optionals=optionals,
        check_left_recursion=left_recursion,
        check_lexer_conflicts=lexer_conflicts,
        min_prefix_length=min_prefix,
    )
    report = analyze_ambiguities(_load(file), options)
    if as_json:
        _echo_json(report.to_json())
    else:
        _print_report(reporting.ambiguity_report(report))
    if not report.success:
        raise typer.Exit(code=1)


@app.command()
def tokens(
    file: GrammarFile,
    text: Annotated[str, typer.Argument(help='Input text to tokenize.')],
    *,
    rule: Annotated[
        list[str] | None,
        typer.Option('--rule', '-r', help='Only use these lexer rules.'),
    ] = None,
    show_skipped: Annotated[
        bool, typer.Option(help='Include skipped tokens in the table.')
    ] = False,
    as_json: JsonFlag = False,
) -> None:
    """Tokenize TEXT with the lexer rules of the grammar."""
    result = tokenize(_load(file), text, rules=rule or None)
    if as_json:
        _echo_json(result.to_json())
    else:
        table = Table(title=result.summary)
        for column in ('Type', 'Value', 'Line', 'Column', 'Channel'):
            table.add_column(column)
        for token in result.tokens:
            if token.skipped and not show_skipped:
                continue
            table.add_row(
                Text(token.type),
                Text(repr(token.value)),
                str(token.line),
                str(token.column),
                Text(token.channel or ('skip' if token.skipped else '')),
            )
        console.print(table)
        for warning in result.warnings:
            console.print(Text(f'⚠️  {warning}', style='yellow'))
        for error in result.errors:
            console.print(Text(f'❌ {error.message}', style='red'))
    if not result.success:
        raise typer.Exit(code=1)


@app.command('test-rule')
def test_rule(
    file: GrammarFile,
    rule: Annotated[str, typer.Argument(help='Parser rule to match.')],
    text: Annotated[str, typer.Argument(help='Input text to tokenize and match.')],
    *,
    as_json: JsonFlag = False,
) -> None:
    """Tokenize TEXT and check whether RULE accepts the tokens."""
    result = rule_matcher.test_rule_input(_load(file), rule, text)
    if as_json:
        _echo_json(result.to_json())
    else:
        icon = '✅' if result.matched else '❌'
        console.print(
            Text(f'{icon} {result.message} (confidence: {result.confidence})')
        )
        if result.expected_tokens:
            console.print(
                Text(f'Expected: {", ".join(result.expected_tokens)}', style='dim')
            )
    if not result.success or not result.matched:
        raise typer.Exit(code=1)


@app.command()
def metrics(
    file: GrammarFile,
    *,
    rule: Annotated[
        str | None, typer.Option('--rule', '-r', help='Show one rule only.')
    ] = None,
    as_json: JsonFlag = False,
) -> None:
    """Size, branching, complexity and dependency metrics."""
    model = _load(file)
    if rule is not None:
        statistics = rule_statistics(model, rule)
        if statistics is None:
            console.print(Text(f"Rule '{rule}' not found", style='red'))
            raise typer.Exit(code=1)
        if as_json:
            _echo_json(statistics)
            return
        table = Table(title=f'Rule {rule}', show_header=False)
        for key, value in statistics.items():
            shown = ', '.join(value) if isinstance(value, list) else str(value)
            table.add_row(key.replace('_', ' '), Text(shown))
        console.print(table)
        return

    data = compute_metrics(model)
    if as_json:
        _echo_json(data)
    else:
        _print_report(reporting.metrics_report(data, model.name or file.stem))


@app.command()
def redos(file: GrammarFile, *, as_json: JsonFlag = False) -> None:
    """Find lexer patterns prone to catastrophic backtracking."""
    report = detect_redos(_load(file))
    if as_json:
        _echo_json(report.to_json())
    else:
        _print_report(reporting.redos_report(report))
    if report.summary['high']:
        raise typer.Exit(code=1)


@app.command()
def modes(
    file: GrammarFile,
    *,
    transitions: Annotated[
        bool, typer.Option(help='Show the mode transition graph.')
    ] = False,
    as_json: JsonFlag = False,
) -> None:
    """Analyze lexer modes and the transitions between them."""
    model = _load(file)
    if transitions:
        graph = analyze_mode_transitions(model)
        if as_json:
            _echo_json(graph.to_json())
        else:
            _print_report(reporting.mode_transitions_report(graph))
        _fail_on_errors(graph.issues)
        return

    report = analyze_lexer_modes(model)
    if as_json:
        _echo_json(report.to_json())
    else:
        _print_report(reporting.lexer_modes_report(report))
    _fail_on_errors(report.issues)


@app.command()
def bottlenecks(file: GrammarFile, *, as_json: JsonFlag = False) -> None:
    """Rank rules that are likely to slow down lexing or parsing."""
    report = analyze_bottlenecks(_load(file))
    if as_json:
        _echo_json(report.to_json())
    else:
        _print_report(reporting.bottleneck_report(report))


@app.command()
def style(file: GrammarFile, *, as_json: JsonFlag = False) -> None:
    """Check naming and size conventions and compute a style score."""
    report = check_style(_load(file))
    if as_json:
        _echo_json(report.to_json())
    else:
        _print_report(reporting.style_report(report))
    _fail_on_errors(report.issues)


@app.command()
def order(
    file: GrammarFile,
    *,
    strategy: Annotated[
        Strategy, typer.Option(help='How to order the rules.')
    ] = Strategy.dependency,
    anchor: Annotated[
        str | None,
        typer.Option(help='Group dependency order around this rule.'),
    ] = None,
    parser_first: Annotated[
        bool, typer.Option(help='For the type strategy, list parser rules first.')
    ] = True,
    as_json: JsonFlag = False,
) -> None:
    """Print the rule names in a new order."""
    result = order_rules(
        _load(file), strategy.value, anchor=anchor, parser_first=parser_first
    )
    if as_json:
        _echo_json(result.to_json())
    elif result.success:
        console.print(result.message, markup=False)
        for name in result.rules:
            console.print(f'  {name}', markup=False, highlight=False)
    else:
        console.print(Text(result.message, style='red'))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def find(
    file: GrammarFile,
    pattern: Annotated[str, typer.Argument(help='Name, regex or wildcard.')],
    *,
    mode: Annotated[
        MatchMode, typer.Option(help='How PATTERN is matched.')
    ] = MatchMode.exact,
    as_json: JsonFlag = False,
) -> None:
    """Find rules by name."""
    result = find_rules(_load(file), pattern, mode=mode.value)
    if result.error is not None:
        console.print(Text(result.error, style='red'))
        raise typer.Exit(code=1)
    if as_json:
        _echo_json([rule.to_json() for rule in result.matches])
        return
    console.print(f'Found {result.count} rule(s)', markup=False)
    for rule in result.matches:
        console.print(
            Text(f'  {rule.name} ({rule.kind}, line {rule.line_number})'),
        )


@app.command()
def compare(
    first: GrammarFile,
    second: GrammarFile,
    *,
    as_json: JsonFlag = False,
) -> None:
    """List rules added, removed and modified between two grammars."""
    comparison = compare_models(_load(first), _load(second))
    if as_json:
        _echo_json(comparison.to_json())
    else:
        _print_report(reporting.comparison_report(comparison))


@app.command('check-report')
def check_report(
    files: Annotated[
        list[Path],
        typer.Argument(exists=True, dir_okay=False, help='JSON reports to check.'),
    ],
) -> None:
    """Validate JSON reports written by 'analyze --json'."""
    schema.validate(files)
    console.print(f'✅ {len(files)} report(s) valid.')


def main() -> None:
    app()


if __name__ == '__main__':
    main()
