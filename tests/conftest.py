"""Shared grammar sources and scanned models."""

from __future__ import annotations

from textwrap import dedent
from typing import TYPE_CHECKING

import pytest

from g4_grammar.scanner import scan

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from g4_grammar.model import GrammarModel


# ============================================================================
# Grammar sources
# ============================================================================

CALC = dedent(
    r"""
    grammar Calc;

    prog : stat+ EOF ;
    stat : expr NEWLINE
         | ID '=' expr NEWLINE
         ;
    expr : expr ('*' | '/') expr
         | expr ('+' | '-') expr
         | INT
         | ID
         | '(' expr ')'
         ;

    ID      : [a-zA-Z]+ ;
    INT     : [0-9]+ ;
    NEWLINE : '\r'? '\n' ;
    WS      : [ \t]+ -> skip ;
    """
)

DECL = dedent(
    """
    grammar Decl;

    decl : TYPE ID ';' ;

    TYPE : 'int' | 'float' ;
    ID   : [a-z]+ ;
    WS   : [ \\t\\r\\n]+ -> skip ;
    """
)

AMBIGUOUS = dedent(
    """
    grammar Amb;

    dup       : B C | B C ;
    prefix    : B C D | B C E ;
    opt       : B? B ;
    redundant : B? B* ;
    x         : y Q ;
    y         : x R | R ;

    B  : 'b' ;
    C  : 'c' ;
    D  : 'd' ;
    E  : 'e' ;
    Q  : 'q' ;
    R  : 'r' ;
    ID : [a-z]+ ;
    KW : 'if' ;
    """
)

MODES = dedent(
    """
    lexer grammar Tags;

    OPEN : '<' -> pushMode(INSIDE) ;
    TEXT : ~[<]+ ;

    mode INSIDE;
    CLOSE : '>' -> popMode ;
    NAME  : [a-z]+ ;
    SPACE : [ \\t]+ -> skip ;
    """
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope='session')
def calc() -> GrammarModel:
    return scan(CALC)


@pytest.fixture(scope='session')
def decl() -> GrammarModel:
    return scan(DECL)


@pytest.fixture(scope='session')
def ambiguous() -> GrammarModel:
    return scan(AMBIGUOUS)


@pytest.fixture(scope='session')
def tags() -> GrammarModel:
    return scan(MODES)


@pytest.fixture(scope='session')
def calc_source() -> str:
    return CALC


@pytest.fixture(scope='session')
def decl_source() -> str:
    return DECL


@pytest.fixture(scope='session')
def ambiguous_source() -> str:
    return AMBIGUOUS


@pytest.fixture(scope='session')
def modes_source() -> str:
    return MODES


@pytest.fixture
def grammar_file(tmp_path: Path) -> Callable[..., Path]:
    """Write grammar source to ``tmp_path`` and return the file path."""

    def write(source: str, name: str = 'Grammar.g4') -> Path:
        path = tmp_path / name
        path.write_text(source, encoding='utf-8')
        return path

    return write
