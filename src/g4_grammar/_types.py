from __future__ import annotations

from typing import Literal, NotRequired, TypedDict

type Severity = Literal['error', 'warning', 'info']
type RuleKind = Literal['lexer', 'parser']
type GrammarKind = Literal['lexer', 'parser', 'combined']
type Modifier = Literal['?', '*', '+']
type Confidence = Literal['high', 'medium', 'low']
type RiskLevel = Literal['high', 'medium', 'low']
type ParseComplexity = Literal['low', 'medium', 'high', 'very-high']


class IssueDict(TypedDict):
    severity: Severity
    message: str
    line: NotRequired[int]
    rule: NotRequired[str]
    kind: NotRequired[str]
    suggestion: NotRequired[str]


class RuleDict(TypedDict):
    name: str
    kind: RuleKind
    fragment: bool
    definition: str
    line: int
    references: list[str]
    mode: NotRequired[str]


class LexerModeDict(TypedDict):
    name: str
    line: int
    rules: list[str]


class GrammarModelDict(TypedDict):
    name: str
    kind: GrammarKind
    rules: list[RuleDict]
    modes: list[LexerModeDict]
    imports: list[str]
    options: dict[str, str]
    issues: list[IssueDict]
    tokens: NotRequired[list[str]]


class TokenDict(TypedDict):
    type: str
    value: str
    start: int
    end: int
    line: int
    column: int
    skipped: bool
    channel: NotRequired[str]


class TokenizeErrorDict(TypedDict):
    position: int
    char: str
    line: int
    column: int
    message: str


class TokenizeResultDict(TypedDict):
    success: bool
    mode: Literal['native', 'simulation']
    tokens: list[TokenDict]
    errors: list[TokenizeErrorDict]
    warnings: list[str]
    summary: str


class RuleTestResultDict(TypedDict):
    success: bool
    matched: bool
    confidence: Confidence
    message: str
    partial: bool
    expected_tokens: list[str]
    matched_alternative: NotRequired[int]


class IssueSummaryDict(TypedDict):
    errors: int
    warnings: int
    infos: int
    rules_analyzed: int


class AmbiguityReportDict(TypedDict):
    success: bool
    issues: list[IssueDict]
    summary: IssueSummaryDict


class RuleBranchingDict(TypedDict):
    name: str
    alternatives: int
    depth: int


class SizeMetricsDict(TypedDict):
    total_rules: int
    parser_rules: int
    lexer_rules: int
    fragments: int
    total_lines: int
    avg_rule_length: float


class BranchingMetricsDict(TypedDict):
    avg_alternatives: float
    max_alternatives: int
    avg_branching_depth: float
    max_branching_depth: int
    branching_distribution: dict[str, int]
    rules_with_most_branching: list[RuleBranchingDict]


class ComplexityMetricsDict(TypedDict):
    avg_cyclomatic_complexity: float
    max_cyclomatic_complexity: int
    total_cyclomatic_complexity: int
    recursive_rules: list[str]
    estimated_parse_complexity: ParseComplexity


class ReferenceCountDict(TypedDict):
    name: str
    count: int


class DependencyMetricsDict(TypedDict):
    avg_fan_in: float
    avg_fan_out: float
    orphan_rules: list[str]
    hub_rules: list[str]
    most_referenced: list[ReferenceCountDict]


class GrammarMetricsDict(TypedDict):
    size: SizeMetricsDict
    branching: BranchingMetricsDict
    complexity: ComplexityMetricsDict
    dependencies: DependencyMetricsDict


class VulnerabilityDict(TypedDict):
    rule: str
    line: int
    kind: str
    severity: RiskLevel
    issue: str
    pattern: str
    suggestion: str


class ModeTransitionDict(TypedDict):
    source: str
    target: str
    action: str
    rule: str


class BottleneckDict(TypedDict):
    type: str
    severity: RiskLevel
    description: str
    suggestion: str
    impact: str
    rule: NotRequired[str]
    line: NotRequired[int]
    pattern: NotRequired[str]


class RuleStatisticsDict(TypedDict):
    name: str
    kind: RuleKind
    line: int
    alternatives: int
    depth: int
    cyclomatic_complexity: int
    fan_in: int
    fan_out: int
    referenced_by: list[str]
    references: list[str]
    is_recursive: bool
    recursion_depth: int


class RiskSummaryDict(TypedDict):
    high: int
    medium: int
    low: int


class ReDoSReportDict(TypedDict):
    vulnerabilities: list[VulnerabilityDict]
    summary: RiskSummaryDict


class ModeEntryDict(TypedDict):
    mode: str
    rule: str
    action: str


class ModeExitDict(TypedDict):
    mode: str
    rule: str


class LexerModeReportDict(TypedDict):
    modes: list[LexerModeDict]
    entry_points: list[ModeEntryDict]
    exit_points: list[ModeExitDict]
    issues: list[IssueDict]


class ModeTransitionReportDict(TypedDict):
    transitions: list[ModeTransitionDict]
    issues: list[IssueDict]
    suggestions: list[str]


class BottleneckMetricsDict(TypedDict):
    total_bottlenecks: int
    high_severity: int
    estimated_improvement: str


class BottleneckReportDict(TypedDict):
    bottlenecks: list[BottleneckDict]
    metrics: BottleneckMetricsDict
    recommendations: list[str]


class IssueGroupItemDict(TypedDict):
    name: str
    count: int


class IssueGroupDict(TypedDict):
    category: str
    count: int
    unique_items: int
    top_items: list[IssueGroupItemDict]
    suggestion: NotRequired[str]


class IssueAggregateDict(TypedDict):
    summary: str
    groups: list[IssueGroupDict]


class SuspiciousQuantifierDict(TypedDict):
    rule: str
    line: int
    pattern: str
    suggestion: str
    reasoning: str


class TokenSuggestionDict(TypedDict):
    name: str
    pattern: str
    reasoning: str


class IncompleteParsingDict(TypedDict):
    rule: str
    line: int
    pattern: str
    suggestion: str


class RuleCountsDict(TypedDict):
    name: str
    parser_rules: int
    lexer_rules: int
    total_rules: int


class GrammarComparisonDict(TypedDict):
    first: RuleCountsDict
    second: RuleCountsDict
    added: list[str]
    removed: list[str]
    modified: list[str]
    summary: str


class StyleReportDict(TypedDict):
    score: int
    issues: list[IssueDict]
    summary: IssueSummaryDict


class OrderResultDict(TypedDict):
    success: bool
    rules: list[str]
    message: str
