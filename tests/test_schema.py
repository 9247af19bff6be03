"""Tests for the JSON schema of ``analyze --json`` reports."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
import typer
from jsonschema import Draft7Validator, ValidationError
from referencing import Registry, Resource
from referencing.exceptions import NoSuchResource

from g4_grammar import schema
from g4_grammar.common import REPORT_SCHEMA_PATH

if TYPE_CHECKING:
    from pathlib import Path

    from jsonschema.protocols import Validator

    from g4_grammar.model import GrammarModel


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope='session')
def report_schema() -> dict[str, object]:
    """Load and cache the report schema."""
    return json.loads(REPORT_SCHEMA_PATH.read_text())


@pytest.fixture(scope='session')
def registry(report_schema: dict[str, object]) -> Registry:
    def retrieve_schema(uri: str) -> Resource:
        if uri != schema.SCHEMA_REF:
            raise NoSuchResource(f'Cannot resolve schema URI: {uri}')

        return Resource.from_contents(report_schema)

    return Registry(retrieve=retrieve_schema)


@pytest.fixture(scope='session')
def validator(registry: Registry, report_schema: dict[str, object]) -> Validator:
    return Draft7Validator(schema=report_schema, registry=registry)


def report(model: GrammarModel) -> dict[str, object]:
    return {'$schema': schema.SCHEMA_REF, **model.to_json()}


# ============================================================================
# Test Classes
# ============================================================================


class TestSchema:
    def test_schema_is_valid(self, report_schema: dict[str, object]) -> None:
        Draft7Validator.check_schema(report_schema)

    def test_schema_id_matches_reference(
        self, report_schema: dict[str, object]
    ) -> None:
        assert report_schema['$id'] == schema.SCHEMA_REF


class TestReports:
    @pytest.mark.parametrize('name', ['calc', 'decl', 'ambiguous', 'tags'])
    def test_scanned_grammars_conform(
        self, name: str, validator: Validator, request: pytest.FixtureRequest
    ) -> None:
        model: GrammarModel = request.getfixturevalue(name)
        try:
            validator.validate(report(model))
        except ValidationError as e:
            pytest.fail(
                f'Report does not conform to schema: {e.message}\n'
                f'Path: {list(e.absolute_path)}'
            )

    def test_lexer_rules_carry_mode(self, tags: GrammarModel) -> None:
        rules = tags.to_json()['rules']
        assert rules[0].get('mode') == 'DEFAULT_MODE'
        assert rules[-1].get('mode') == 'INSIDE'

    def test_missing_fields(self, validator: Validator) -> None:
        errors = [error.message for error in validator.iter_errors({'name': 'X'})]
        assert "'kind' is a required property" in errors

    def test_report_errors(self, calc: GrammarModel) -> None:
        data = report(calc)
        data['kind'] = 'tree'
        assert schema.report_errors(data) == [
            "kind: 'tree' is not one of ['lexer', 'parser', 'combined']"
        ]

    def test_bad_issue_kind(self, calc: GrammarModel) -> None:
        data = report(calc)
        data['issues'] = [{'severity': 'info', 'message': 'x', 'kind': 'Not Kebab'}]
        with pytest.raises(ValidationError):
            schema.validate_report(data)


class TestValidateFiles:
    def test_valid_files(self, calc: GrammarModel, tmp_path: Path) -> None:
        path = tmp_path / 'calc.json'
        path.write_text(json.dumps(report(calc)))
        schema.validate([path, REPORT_SCHEMA_PATH])

    def test_invalid_file(self, tmp_path: Path) -> None:
        path = tmp_path / 'bad.json'
        path.write_text(json.dumps({'$schema': schema.SCHEMA_REF, 'rules': []}))
        with pytest.raises(typer.Exit):
            schema.validate([path])
