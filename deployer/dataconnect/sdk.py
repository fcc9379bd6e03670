"""Data Connect SDK scaffolding: write connector.yaml, then generate code."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from ..errors import DeployError
from ..utils.output import bold, log_bullet
from ..validator import validate_config
from .emulator import DataConnectEmulator

CONNECTOR_YAML = "connector.yaml"

IOS_SDK_NOTICE = (
    "Please follow the instructions here to add your generated sdk to your "
    "XCode project:\n\thttps://firebase.google.com/docs/data-connect/gp/ios-sdk"
)


@dataclass
class ConnectorInfo:
    directory: str
    connector_yaml: dict[str, Any]
    connector: dict[str, Any] = field(default_factory=dict)


@dataclass
class SDKInfo:
    connector_yaml_contents: str
    connector_info: ConnectorInfo
    display_ios_warning: bool = False


def render_connector_yaml(connector_yaml: dict[str, Any]) -> str:
    """Dump a connector.yaml mapping after checking it against its schema.

    Raises:
        DeployError: If connector_yaml is not a valid connector config.
    """
    try:
        validate_config(connector_yaml, "ConnectorYaml")
    except jsonschema.ValidationError as exc:
        raise DeployError(f"Invalid connector.yaml: {exc.message}", original=exc) from exc
    return yaml.safe_dump(connector_yaml, sort_keys=False)


def build_sdk_info(
    directory: str | Path,
    connector_id: str,
    generate: dict[str, Any] | None = None,
    display_ios_warning: bool = False,
) -> SDKInfo:
    """Assemble SDKInfo for a connector with the given generate options."""
    connector_yaml: dict[str, Any] = {"connectorId": connector_id}
    if generate:
        connector_yaml["generate"] = generate
    return SDKInfo(
        connector_yaml_contents=render_connector_yaml(connector_yaml),
        connector_info=ConnectorInfo(
            directory=str(directory),
            connector_yaml=connector_yaml,
            connector={"name": connector_id, "source": {}},
        ),
        display_ios_warning=display_ios_warning,
    )


def actuate(
    sdk_info: SDKInfo,
    *,
    emulator: type[DataConnectEmulator] = DataConnectEmulator,
    command: str | None = None,
) -> None:
    """Write connector.yaml into the connector directory and run the generator.

    command overrides the emulator invocation (see emulator.emulator_command).

    Raises:
        DeployError: If the generator fails.
        OSError: If connector.yaml cannot be written.
    """
    info = sdk_info.connector_info
    connector_yaml_path = f"{info.directory}/{CONNECTOR_YAML}"
    Path(connector_yaml_path).write_text(sdk_info.connector_yaml_contents, encoding="utf8")
    log_bullet(f"Wrote new config to {connector_yaml_path}")

    connector_id = info.connector_yaml["connectorId"]
    emulator.generate(config_dir=info.directory, connector_id=connector_id, command=command)
    log_bullet(f"Generated SDK code for {connector_id}")

    if info.connector_yaml.get("generate", {}).get("swiftSdk") and sdk_info.display_ios_warning:
        log_bullet(bold(IOS_SDK_NOTICE))
