"""JSON Schema validation of the metadata.json document exchanged between the export and import runs."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from core.config import DEFAULT_SCHEMA_PATH
from core.errors import ConfigurationError

MAX_REPORTED_ERRORS = 20


def error_path(path) -> str:
    """``organizations[0].issues[1].year`` style location of a schema error."""
    text = ''
    for part in path:
        text += f"[{part}]" if isinstance(part, int) else (f".{part}" if text else str(part))
    return text or '<root>'


class MetadataValidator:
    def __init__(self, schema_path: str | Path = DEFAULT_SCHEMA_PATH):
        self.schema_path = Path(schema_path)
        self.schema = self._load()
        self.validator = Draft202012Validator(self.schema)

    def _load(self) -> Dict[str, Any]:
        if not self.schema_path.is_file():
            raise ConfigurationError(f"Metadata schema not found: {self.schema_path}")
        try:
            schema = json.loads(self.schema_path.read_text(encoding='utf-8'))
            Draft202012Validator.check_schema(schema)
        except (ValueError, SchemaError) as exc:
            raise ConfigurationError(f"Metadata schema {self.schema_path} is unusable: {exc}") from exc
        return schema

    def errors(self, metadata: Dict[str, Any]) -> List[str]:
        errors = []
        for err in sorted(self.validator.iter_errors(metadata), key=lambda e: [str(p) for p in e.path]):
            errors.append(f"{error_path(err.path)}: {err.message}")
        return errors

    def validate(self, metadata: Dict[str, Any], label: str = 'metadata') -> None:
        errors = self.errors(metadata)
        if not errors:
            return
        shown = errors[:MAX_REPORTED_ERRORS]
        if len(errors) > len(shown):
            shown.append(f"... and {len(errors) - len(shown)} more")
        raise ConfigurationError(f"The {label} is invalid:\n" + "\n".join(shown))
