from __future__ import annotations

from pathlib import Path
from typing import Final

PACKAGE_ROOT: Final = Path(__file__).resolve().parent
REPORT_SCHEMA_PATH: Final = PACKAGE_ROOT / 'analysis-report.schema.json'

DEFAULT_MODE: Final = 'DEFAULT_MODE'

# Rule capture stops after this many continuation lines without a ';'.
MAX_RULE_LINES: Final = 10_000

MAX_RECURSION_DEPTH: Final = 10
SELF_RECURSION_DEPTH: Final = 5
MAX_FRAGMENT_INLINE_DEPTH: Final = 16
MAX_GRAPH_DEPTH: Final = 256

HUB_THRESHOLD: Final = 5
DEFAULT_MIN_PREFIX_LENGTH: Final = 2

BUILTIN_RULES: Final = frozenset({'EOF'})

UNUSED_ALLOW_PREFIXES: Final = (
    'WS',
    'WHITESPACE',
    'SPACE',
    'NEWLINE',
    'COMMENT',
    'LINE_COMMENT',
    'BLOCK_COMMENT',
)

GRAMMAR_KEYWORDS: Final = frozenset(
    {
        'grammar',
        'lexer',
        'parser',
        'import',
        'options',
        'tokens',
        'fragment',
        'returns',
        'throws',
        'locals',
        'catch',
        'finally',
        'EOF',
        'mode',
        'channel',
        'skip',
        'more',
        'type',
        'pushMode',
        'popMode',
    }
)

# Words ANTLR does not accept as rule names.
RESERVED_RULE_NAMES: Final = frozenset(
    {
        'catch',
        'finally',
        'fragment',
        'grammar',
        'import',
        'lexer',
        'locals',
        'mode',
        'options',
        'parser',
        'returns',
        'throws',
        'tokens',
    }
)
