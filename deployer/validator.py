"""Config document validation against JSON Schema draft-07 definitions."""

import json
from pathlib import Path

import jsonschema

CONFIG_SCHEMAS: dict[str, str] = {
    "FunctionsConfig": "FunctionsConfig.v1.json",
    "ConnectorYaml": "ConnectorYaml.v1.json",
}

SCHEMAS_DIR = Path(__file__).parent / "schemas"


def validate_config(data: dict, config_type: str) -> None:
    """Load schema from disk and validate data against it.

    Args:
        data: The config mapping to validate.
        config_type: One of the keys in CONFIG_SCHEMAS.

    Raises:
        KeyError: If config_type is not recognised.
        jsonschema.ValidationError: If data does not conform to the schema.
        jsonschema.SchemaError: If the schema file itself is malformed.
    """
    schema_filename = CONFIG_SCHEMAS[config_type]
    schema_file = SCHEMAS_DIR / schema_filename
    schema = json.loads(schema_file.read_text(encoding="utf-8"))
    jsonschema.validate(instance=data, schema=schema)
