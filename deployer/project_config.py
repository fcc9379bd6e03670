"""The functions section of firebase.json: loading, normalising, validating."""

import json
from pathlib import Path
from typing import Any

import jsonschema

from .errors import DeployError
from .validator import validate_config

DEFAULT_CODEBASE = "default"


def load_firebase_json(path: str | Path) -> dict[str, Any]:
    """Read firebase.json.

    Raises:
        DeployError: If the file is unreadable or not a JSON object.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise DeployError(f"Could not read {path}: {exc}", original=exc) from exc
    except json.JSONDecodeError as exc:
        raise DeployError(f"{path} is not valid JSON: {exc}", original=exc) from exc
    if not isinstance(data, dict):
        raise DeployError(f"{path} must contain a JSON object")
    return data


def normalize(functions: Any) -> list[dict[str, Any]]:
    """Coerce the functions section to a list of config mappings.

    A single mapping becomes a one-element list; a missing section is [].
    """
    if functions is None:
        return []
    if isinstance(functions, dict):
        return [functions]
    if isinstance(functions, list):
        return functions
    raise DeployError("functions config must be an object or a list of objects")


def validate(configs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate every entry and fill in the default codebase.

    Returns new dicts; the inputs are not modified.

    Raises:
        DeployError: On a schema violation, or when two entries share a
                     codebase or a source directory.
    """
    validated: list[dict[str, Any]] = []
    seen_codebases: set[str] = set()
    seen_sources: set[str] = set()

    for cfg in configs:
        try:
            validate_config(cfg, "FunctionsConfig")
        except jsonschema.ValidationError as exc:
            raise DeployError(f"Invalid functions config: {exc.message}", original=exc) from exc

        entry = dict(cfg)
        entry.setdefault("codebase", DEFAULT_CODEBASE)

        if entry["codebase"] in seen_codebases:
            raise DeployError(
                f"functions.codebase must be unique but '{entry['codebase']}' was used more than once."
            )
        if entry["source"] in seen_sources:
            raise DeployError(
                f"functions.source must be unique but '{entry['source']}' was used more than once."
            )
        seen_codebases.add(entry["codebase"])
        seen_sources.add(entry["source"])
        validated.append(entry)

    return validated


def normalize_and_validate(functions: Any) -> list[dict[str, Any]]:
    return validate(normalize(functions))


def config_for_codebase(configs: list[dict[str, Any]], codebase: str) -> dict[str, Any]:
    """Return the config entry whose codebase matches.

    Raises:
        DeployError: If no entry matches.
    """
    for cfg in configs:
        if cfg.get("codebase", DEFAULT_CODEBASE) == codebase:
            return cfg
    raise DeployError(f"No functions config found for codebase {codebase}")
