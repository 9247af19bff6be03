from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING, Final

import typer
from jsonschema import Draft7Validator, validators
from jsonschema.exceptions import SchemaError, ValidationError
from rich import print

from g4_grammar.common import REPORT_SCHEMA_PATH

if TYPE_CHECKING:
    from g4_grammar._types import GrammarModelDict

SCHEMA_REF: Final = f'./{REPORT_SCHEMA_PATH.name}'

_SCHEMA: Final = json.loads(REPORT_SCHEMA_PATH.read_text())


def validate_report(data: GrammarModelDict | dict[str, object]) -> None:
    """Raise ``ValidationError`` unless ``data`` is a valid analysis report."""
    Draft7Validator(_SCHEMA).validate(data)


def report_errors(data: object) -> list[str]:
    """Every schema violation in ``data``, as ``path: message`` strings."""
    errors = sorted(
        Draft7Validator(_SCHEMA).iter_errors(data), key=lambda e: list(e.path)
    )
    return [f'{"/".join(map(str, e.path)) or "<root>"}: {e.message}' for e in errors]


def validate(files: list[Path]) -> None:
    for file in files:
        data = json.loads(file.read_text())
        try:
            if '$schema' in data and data['$schema'] != SCHEMA_REF:
                validators.validator_for(data).check_schema(data)
            else:
                validate_report(data)
        except (SchemaError, ValidationError) as e:
            print(f'{file}: {e.message}')
            raise typer.Exit(code=1) from e


def main() -> None:
    typer.run(validate)


if __name__ == '__main__':
    main()
