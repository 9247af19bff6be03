"""Grammar imports: resolving, loading and merging imported grammars.

ANTLR lets a grammar pull in rules with ``import A, B;`` and tokens with the
``tokenVocab`` option. Rules of the importing grammar take precedence over
imported rules of the same name.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from g4_grammar.common import DEFAULT_MODE
from g4_grammar.model import GrammarModel, Issue, LexerMode
from g4_grammar.scanner import scan
from g4_grammar.validation import validate

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from g4_grammar.model import Rule

logger = logging.getLogger(__name__)

GRAMMAR_SUFFIX: Final = '.g4'

# Issues recomputed by ``validate`` once imported rules are visible.
_REFERENCE_KINDS: Final = frozenset(
    {
        'missing-declaration',
        'duplicate-rule',
        'undefined-reference',
        'unused-rule',
        'left-recursion',
    }
)


def token_vocab(model: GrammarModel, /) -> str | None:
    """The ``tokenVocab`` option of ``model``, if set."""
    vocab = model.options.get('tokenVocab')
    return vocab.strip('\'"') if vocab else None


def _merged_modes(
    rules: list[Rule], sources: Sequence[GrammarModel]
) -> list[LexerMode]:
    modes: dict[str, LexerMode] = {DEFAULT_MODE: LexerMode(DEFAULT_MODE)}
    for model in sources:
        for mode in model.modes:
            modes.setdefault(mode.name, LexerMode(mode.name, mode.line_number))
    for rule in rules:
        if rule.kind == 'lexer':
            mode = rule.mode or DEFAULT_MODE
            modes.setdefault(mode, LexerMode(mode)).rules.append(rule.name)
    return list(modes.values())


def merge_models(
    main: GrammarModel, imported: Sequence[GrammarModel], /
) -> GrammarModel:
    """Merge ``imported`` grammars into a copy of ``main``.

    Rules keep the first definition seen, starting with ``main``; later
    definitions of the same name are dropped. Issues of imported grammars are
    kept with their grammar name as a ``[Name]`` prefix.

    Args:
        main: The importing grammar.
        imported: Imported grammars, in import order.

    Returns:
        A new model; neither ``main`` nor ``imported`` is modified.
    """
    rules = list(main.rules)
    seen = {rule.name for rule in main.rules}
    tokens = list(main.tokens)
    imports = list(main.imports)
    issues = list(main.issues)

    for model in imported:
        for rule in model.rules:
            if rule.name in seen:
                logger.debug('%s overrides %s.%s', main.name, model.name, rule.name)
                continue
            rules.append(rule)
            seen.add(rule.name)
        tokens.extend(name for name in model.tokens if name not in tokens)
        imports.extend(name for name in model.imports if name not in imports)
        issues.extend(
            Issue(
                issue.severity,
                f'[{model.name}] {issue.message}',
                line_number=issue.line_number,
                rule_name=issue.rule_name,
                kind=issue.kind,
                suggestion=issue.suggestion,
            )
            for issue in model.issues
        )

    return GrammarModel(
        name=main.name,
        kind=main.kind,
        rules=rules,
        modes=_merged_modes(rules, [main, *imported]),
        imports=imports,
        options=dict(main.options),
        issues=issues,
        tokens=tokens,
        line_count=main.line_count,
    )


def resolve_import_path(
    name: str, current_file: Path, /, base_path: Path | None = None
) -> Path | None:
    """Find ``name.g4`` beside ``current_file`` or under ``base_path``."""
    candidates = [current_file.parent / f'{name}{GRAMMAR_SUFFIX}']
    if base_path is not None:
        candidates.extend(
            [
                base_path / f'{name}{GRAMMAR_SUFFIX}',
                base_path / name / f'{name}{GRAMMAR_SUFFIX}',
                base_path / 'imports' / f'{name}{GRAMMAR_SUFFIX}',
            ]
        )
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def _placeholder(path: Path, issue: Issue) -> GrammarModel:
    return GrammarModel(name=path.stem, issues=[issue])


def load_grammar(
    path: Path,
    /,
    base_path: Path | None = None,
    *,
    _cache: dict[Path, GrammarModel] | None = None,
    _visited: frozenset[Path] = frozenset(),
) -> GrammarModel:
    """Scan the grammar at ``path`` and merge everything it imports.

    Imports and the ``tokenVocab`` grammar are resolved with
    ``resolve_import_path`` and loaded recursively. Unresolvable imports,
    unreadable files and import cycles become issues on the returned model.
    Reference checks are rerun on the merged model.
    """
    path = path.resolve()
    cache = {} if _cache is None else _cache
    if path in cache:
        return cache[path]
    if path in _visited:
        return _placeholder(
            path, Issue('warning', f'Circular import: {path}', kind='circular-import')
        )

    try:
        source = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        return _placeholder(
            path,
            Issue('error', f'Failed to read file: {e}', kind='unreadable-import'),
        )

    main = scan(source)
    visited = _visited | {path}
    resolution_issues: list[Issue] = []
    imported: list[GrammarModel] = []

    names = [(name, 'import') for name in main.imports]
    if (vocab := token_vocab(main)) is not None:
        names.append((vocab, 'tokenVocab'))
    for name, origin in names:
        resolved = resolve_import_path(name, path, base_path)
        if resolved is None:
            resolution_issues.append(
                Issue(
                    'warning',
                    f'Cannot resolve {origin}: {name}',
                    kind='unresolved-import',
                )
            )
            continue
        imported.append(
            load_grammar(resolved, base_path, _cache=cache, _visited=visited)
        )

    merged = merge_models(main, imported)
    merged.issues = [
        *resolution_issues,
        *(issue for issue in merged.issues if issue.kind not in _REFERENCE_KINDS),
        *validate(merged),
    ]
    cache[path] = merged
    logger.debug(
        'loaded %s with %d imported grammars (%d rules)',
        path.name,
        len(imported),
        len(merged.rules),
    )
    return merged
