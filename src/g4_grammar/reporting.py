"""Human-readable text and markdown reports for analysis results."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from g4_grammar.metrics import fan_in

if TYPE_CHECKING:
    from collections.abc import Iterable

    from g4_grammar._types import GrammarMetricsDict
    from g4_grammar.ambiguity import AmbiguityReport
    from g4_grammar.bottlenecks import BottleneckReport
    from g4_grammar.model import GrammarModel, Issue
    from g4_grammar.modes import LexerModeReport, ModeTransitionReport
    from g4_grammar.quality import GrammarComparison, RuleCounts, StyleReport
    from g4_grammar.redos import ReDoSReport

_SEVERITY_ICONS: Final = {'high': '🔴', 'medium': '🟡', 'low': '🟢'}
_BOTTLENECK_LABELS: Final = {
    'high-branching': '🔀 High Branching',
    'tilde-negation': '📝 Tilde Negation',
    'missing-mode': '🎭 Missing Lexer Mode',
    'greedy-loop': '🔄 Greedy Loop',
    'deep-recursion': '🔁 Deep Recursion',
    'prefix-collision': '🔤 Prefix Collision',
}
_MAX_PATTERN: Final = 80


def _location(issue: Issue) -> str:
    return f' (line {issue.line_number})' if issue.line_number else ''


def format_model(model: GrammarModel, /) -> str:
    """Plain-text listing of rules, imports, options and issues."""
    text = f'Grammar: {model.name} ({model.kind})\n'
    text += f'\nRules ({len(model.rules)}):\n'
    for rule in model.rules:
        text += f'  - {rule.name} ({rule.kind})\n'

    if model.imports:
        text += '\nImports:\n'
        for name in model.imports:
            text += f'  - {name}\n'

    if model.options:
        text += '\nOptions:\n'
        for key, value in model.options.items():
            text += f'  - {key}: {value}\n'

    if model.issues:
        text += f'\nIssues ({len(model.issues)}):\n'
        for issue in model.issues:
            severity = issue.severity.upper()
            text += f'  - [{severity}] {issue.message}{_location(issue)}\n'

    return text


def generate_summary(model: GrammarModel, /) -> str:
    """Short plain-text summary: counts, top referenced rules and issue totals."""
    summary = f'Grammar Summary: {model.name}\n'
    summary += f'{"=" * 50}\n\n'
    summary += f'Type: {model.kind}\n'
    summary += f'Total Rules: {len(model.rules)}\n'
    summary += f'  - Parser Rules: {len(model.parser_rules())}\n'
    summary += f'  - Lexer Rules: {len(model.lexer_rules())}\n\n'

    if model.imports:
        summary += f'Imports: {", ".join(model.imports)}\n\n'

    ranked = sorted(fan_in(model).items(), key=lambda item: item[1], reverse=True)
    top = [(name, count) for name, count in ranked[:5] if count > 0]
    if top:
        summary += 'Most Referenced Rules:\n'
        for name, count in top:
            summary += f'  - {name}: {count} references\n'
        summary += '\n'

    if model.issues:
        summary += f'Issues: {len(model.issues)}\n'
        for label, severity in (
            ('Errors', 'error'),
            ('Warnings', 'warning'),
            ('Info', 'info'),
        ):
            count = sum(1 for issue in model.issues if issue.severity == severity)
            summary += f'  - {label}: {count}\n'
        summary += '\n'

    return summary


def export_markdown(model: GrammarModel, /) -> str:
    """Markdown documentation of every rule of ``model``."""
    markdown = f'# Grammar: {model.name}\n\n'
    markdown += f'**Type**: {model.kind}\n\n'

    if model.imports:
        markdown += '## Imports\n\n'
        for name in model.imports:
            markdown += f'- `{name}`\n'
        markdown += '\n'

    if model.options:
        markdown += '## Options\n\n```\n'
        for key, value in model.options.items():
            markdown += f'{key} = {value};\n'
        markdown += '```\n\n'

    if parser_rules := model.parser_rules():
        markdown += '## Parser Rules\n\n'
        for rule in parser_rules:
            markdown += f'### `{rule.name}`\n\n'
            markdown += f'**Definition**:\n```antlr\n{rule.definition}\n```\n\n'
            if rule.referenced_rules:
                references = ', '.join(f'`{name}`' for name in rule.referenced_rules)
                markdown += f'**References**: {references}\n\n'

    if lexer_rules := model.lexer_rules():
        markdown += '## Lexer Rules\n\n'
        for rule in lexer_rules:
            markdown += f'### `{rule.name}`\n\n'
            markdown += f'**Pattern**:\n```\n{rule.definition}\n```\n\n'

    if model.issues:
        markdown += '## Issues\n\n'
        for issue in model.issues:
            markdown += (
                f'- **[{issue.severity.upper()}]** {issue.message}{_location(issue)}\n'
            )
        markdown += '\n'

    return markdown


def _issue_sections(issues: Iterable[Issue], /) -> str:
    issues = list(issues)
    if not issues:
        return '✅ No issues detected.\n'

    report = '## Issues\n\n'
    for label, severity in (
        ('🔴 ERRORS', 'error'),
        ('⚠️  WARNINGS', 'warning'),
        ('ℹ️  INFO', 'info'),
    ):
        selected = [issue for issue in issues if issue.severity == severity]
        if not selected:
            continue
        report += f'{label}:\n'
        for issue in selected:
            report += f'  - {issue.message}'
            if issue.rule_name:
                report += f' (rule: {issue.rule_name})'
            report += '\n'
            if issue.suggestion:
                report += f'    💡 {issue.suggestion}\n'
        report += '\n'
    return report


def ambiguity_report(report: AmbiguityReport, /) -> str:
    text = '# Ambiguity Analysis\n\n'
    summary = report.summary
    text += (
        f'**Summary:** {summary.errors} errors, {summary.warnings} warnings, '
        f'{summary.infos} info ({summary.rules_analyzed} rules analyzed)\n\n'
    )
    return text + _issue_sections(report.issues)


def metrics_report(metrics: GrammarMetricsDict, /, name: str = '') -> str:
    """Markdown rendering of ``compute_metrics`` output."""
    size = metrics['size']
    branching = metrics['branching']
    complexity = metrics['complexity']
    dependencies = metrics['dependencies']

    report = f'# Grammar Metrics{f": {name}" if name else ""}\n\n'

    report += '## Size\n\n'
    report += f'- **Total rules**: {size["total_rules"]}\n'
    report += f'- **Parser rules**: {size["parser_rules"]}\n'
    report += f'- **Lexer rules**: {size["lexer_rules"]}\n'
    report += f'- **Fragments**: {size["fragments"]}\n'
    report += f'- **Total lines**: {size["total_lines"]}\n'
    report += f'- **Average rule length**: {size["avg_rule_length"]} lines\n\n'

    report += '## Branching\n\n'
    report += f'- **Average alternatives**: {branching["avg_alternatives"]}\n'
    report += f'- **Max alternatives**: {branching["max_alternatives"]}\n'
    report += f'- **Average nesting depth**: {branching["avg_branching_depth"]}\n'
    report += f'- **Max nesting depth**: {branching["max_branching_depth"]}\n\n'
    report += '| Alternatives | Rules |\n|---|---|\n'
    for bucket, count in branching['branching_distribution'].items():
        report += f'| {bucket} | {count} |\n'
    report += '\n'
    if branching['rules_with_most_branching']:
        report += '**Most branching rules**:\n'
        for item in branching['rules_with_most_branching']:
            report += (
                f'- `{item["name"]}`: {item["alternatives"]} alternatives, '
                f'depth {item["depth"]}\n'
            )
        report += '\n'

    report += '## Complexity\n\n'
    report += (
        f'- **Average cyclomatic complexity**: '
        f'{complexity["avg_cyclomatic_complexity"]}\n'
    )
    report += (
        f'- **Max cyclomatic complexity**: '
        f'{complexity["max_cyclomatic_complexity"]}\n'
    )
    report += (
        f'- **Estimated parse complexity**: '
        f'{complexity["estimated_parse_complexity"]}\n'
    )
    if complexity['recursive_rules']:
        recursive = ', '.join(f'`{rule}`' for rule in complexity['recursive_rules'])
        report += f'- **Recursive rules**: {recursive}\n'
    report += '\n'

    report += '## Dependencies\n\n'
    report += f'- **Average fan-in**: {dependencies["avg_fan_in"]}\n'
    report += f'- **Average fan-out**: {dependencies["avg_fan_out"]}\n'
    if dependencies['hub_rules']:
        report += f'- **Hub rules**: {", ".join(dependencies["hub_rules"])}\n'
    if dependencies['orphan_rules']:
        report += f'- **Orphan rules**: {", ".join(dependencies["orphan_rules"])}\n'
    for item in dependencies['most_referenced']:
        report += f'  - `{item["name"]}`: {item["count"]} references\n'

    return report


def redos_report(report: ReDoSReport, /) -> str:
    summary = report.summary
    text = '# ReDoS Vulnerability Analysis\n\n**Summary:** '
    if not report.vulnerabilities:
        return text + '✅ No vulnerabilities detected\n'
    text += ', '.join(
        f'{_SEVERITY_ICONS[level]} {summary[level]} {level}'
        for level in ('high', 'medium', 'low')
        if summary[level]
    )
    text += '\n\n'

    for level, title in (
        ('high', 'High Severity'),
        ('medium', 'Medium Severity'),
        ('low', 'Low Severity'),
    ):
        selected = [v for v in report.vulnerabilities if v.severity == level]
        if not selected:
            continue
        text += f'## {_SEVERITY_ICONS[level]} {title}\n\n'
        for vulnerability in selected:
            text += f'**{vulnerability.rule}** (line {vulnerability.line})\n'
            text += f'- Issue: {vulnerability.issue}\n'
            text += f'- Pattern: `{vulnerability.pattern}`\n'
            text += f'- Suggestion: {vulnerability.suggestion}\n\n'
    return text


def lexer_modes_report(report: LexerModeReport, /) -> str:
    text = '# Lexer Mode Analysis\n\n'
    text += f'## Modes ({len(report.modes)})\n\n'
    for mode in report.modes:
        text += f'### {mode.name}'
        if mode.line_number > 0:
            text += f' (line {mode.line_number})'
        text += f'\nRules: {", ".join(mode.rules) or "(none)"}\n\n'

    if report.entry_points:
        text += '## Entry Points (pushMode and mode actions)\n\n'
        by_mode: dict[str, list[str]] = {}
        for entry in report.entry_points:
            line = f'{entry.rule} → {entry.action}'
            by_mode.setdefault(entry.mode, []).append(line)
        for mode_name, lines in by_mode.items():
            text += f'**{mode_name}**:\n'
            text += ''.join(f'  - {line}\n' for line in lines)
            text += '\n'

    if report.exit_points:
        text += '## Exit Points (popMode actions)\n\n'
        by_mode = {}
        for exit_ in report.exit_points:
            by_mode.setdefault(exit_.mode, []).append(f'{exit_.rule} → popMode')
        for mode_name, lines in by_mode.items():
            text += f'**{mode_name}**:\n'
            text += ''.join(f'  - {line}\n' for line in lines)
            text += '\n'

    return text + _issue_sections(report.issues)


def mode_transitions_report(report: ModeTransitionReport, /) -> str:
    text = '# Mode Transition Analysis\n\n'
    if report.transitions:
        text += '## Transition Graph\n\n```\n'
        by_source: dict[str, list[str]] = {}
        for transition in report.transitions:
            via = f'{transition.rule}: {transition.action}'
            by_source.setdefault(transition.source, []).append(
                f'  → {transition.target} (via {via})'
            )
        for source, lines in by_source.items():
            text += f'{source}:\n' + ''.join(f'{line}\n' for line in lines)
        text += '```\n\n'
    else:
        text += 'No mode transitions found.\n\n'

    text += _issue_sections(report.issues)
    if report.suggestions:
        text += '\n## Suggestions\n\n'
        text += ''.join(f'💡 {suggestion}\n' for suggestion in report.suggestions)
    return text


def bottleneck_report(report: BottleneckReport, /) -> str:
    metrics = report.metrics
    text = '# Performance Bottleneck Analysis\n\n'
    text += f'**Total Issues:** {metrics["total_bottlenecks"]}\n'
    text += f'**High Severity:** {metrics["high_severity"]}\n'
    text += f'**Estimated Improvement:** {metrics["estimated_improvement"]}\n\n'

    if report.recommendations:
        text += '## 🎯 Top Recommendations\n\n'
        text += ''.join(f'- {item}\n' for item in report.recommendations)
        text += '\n'

    by_type: dict[str, list[str]] = {}
    for item in report.bottlenecks:
        entry = f'### {_SEVERITY_ICONS[item.severity]} {item.description}\n'
        if item.rule:
            entry += f'- **Rule:** `{item.rule}`'
            if item.line:
                entry += f' (line {item.line})'
            entry += '\n'
        if item.pattern:
            shown = item.pattern[:_MAX_PATTERN]
            ellipsis = '...' if len(item.pattern) > _MAX_PATTERN else ''
            entry += f'- **Pattern:** `{shown}{ellipsis}`\n'
        entry += f'- **Suggestion:** {item.suggestion}\n'
        entry += f'- **Impact:** {item.impact}\n\n'
        by_type.setdefault(item.type, []).append(entry)

    for kind, entries in by_type.items():
        text += f'## {_BOTTLENECK_LABELS.get(kind, kind)}\n\n' + ''.join(entries)

    if not report.bottlenecks:
        text += '✅ No significant performance bottlenecks detected.\n'
    return text


def style_report(report: StyleReport, /) -> str:
    if report.score >= 80:  # noqa: PLR2004
        icon = '✅'
    elif report.score >= 60:  # noqa: PLR2004
        icon = '⚠️'
    else:
        icon = '❌'
    text = f'# Style Check\n\n**Style Score:** {icon} {report.score}/100\n\n'
    return text + _issue_sections(report.issues)


def _counts(label: str, counts: RuleCounts) -> str:
    return (
        f'- {label} ({counts.name or "unnamed"}): {counts.parser_rules} parser, '
        f'{counts.lexer_rules} lexer ({counts.total_rules} total)\n'
    )


def comparison_report(comparison: GrammarComparison, /) -> str:
    text = f'# Grammar Comparison\n\n{comparison.summary}\n\n## Statistics\n'
    text += _counts('Grammar 1', comparison.first)
    text += _counts('Grammar 2', comparison.second)
    for title, names in (
        ('Added', comparison.added),
        ('Removed', comparison.removed),
        ('Modified', comparison.modified),
    ):
        if names:
            text += f'\n## {title} Rules ({len(names)})\n{", ".join(names)}\n'
    return text
