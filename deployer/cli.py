"""Click CLI entrypoint for deployer."""

import json
import logging
from pathlib import Path

import click

from .dataconnect.sdk import actuate, build_sdk_info
from .errors import DeployError
from .packager import prepare_functions_upload
from .project_config import (
    DEFAULT_CODEBASE,
    config_for_codebase,
    load_firebase_json,
    normalize_and_validate,
)


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Print debug logs to stderr")
def cli(debug: bool) -> None:
    """deployer: package functions source and scaffold Data Connect SDKs."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _functions_config(
    source: str | None,
    config_path: str | None,
    codebase: str,
    ignore: tuple[str, ...],
    isolate: bool,
) -> tuple[str, dict]:
    """Resolve the source directory and functions config.

    With --config the entry's "source" is read relative to firebase.json;
    an explicit --source overrides it.
    """
    if config_path is not None:
        firebase_json = load_firebase_json(config_path)
        configs = normalize_and_validate(firebase_json.get("functions"))
        cfg = dict(config_for_codebase(configs, codebase))
        if source is None:
            source = str(Path(config_path).parent / cfg["source"])
    elif source is None:
        raise click.UsageError("Pass --source, or --config to read it from firebase.json")
    else:
        cfg = normalize_and_validate({"source": source, "codebase": codebase})[0]
    if ignore:
        cfg["ignore"] = list(ignore)
    if isolate:
        cfg["isolate"] = True
    return source, cfg


def _read_runtime_config(path: str | None) -> object:
    if path is None:
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DeployError(f"{path} is not valid JSON: {exc}", original=exc) from exc


@cli.command("package")
@click.option(
    "--source", default=None,
    type=click.Path(exists=True, file_okay=False, readable=True),
    help="Functions source directory (overrides the source in firebase.json)",
)
@click.option(
    "--config", "config_path", default=None,
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="Path to firebase.json (its functions section supplies source/ignore/isolate)",
)
@click.option(
    "--codebase", default=DEFAULT_CODEBASE, show_default=True,
    help="Codebase to read from firebase.json",
)
@click.option(
    "--ignore", multiple=True,
    help="Glob pattern to exclude (repeatable; replaces the configured list)",
)
@click.option(
    "--runtime-config", "runtime_config_path", default=None,
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="JSON file injected into the archive as .runtimeconfig.json",
)
@click.option(
    "--isolate", is_flag=True, default=False,
    help="Isolate the source folder before packaging",
)
def package_command(
    source: str | None,
    config_path: str | None,
    codebase: str,
    ignore: tuple[str, ...],
    runtime_config_path: str | None,
    isolate: bool,
) -> None:
    """Zip a functions source directory and print its fingerprint."""
    source, cfg = _functions_config(source, config_path, codebase, ignore, isolate)
    runtime_config = _read_runtime_config(runtime_config_path)

    packaged = prepare_functions_upload(source, cfg, runtime_config)

    click.echo(f"Archive: {packaged.path_to_source}")
    click.echo(f"Hash   : {packaged.hash}")


@cli.command("dataconnect-sdk")
@click.option(
    "--connector-dir", required=True,
    type=click.Path(exists=True, file_okay=False, writable=True),
    help="Connector directory to write connector.yaml into",
)
@click.option("--connector-id", required=True, help="Connector ID")
@click.option(
    "--output-dir", default=None,
    help="Generate a JavaScript SDK into this directory (relative to the connector)",
)
@click.option("--package", "package_name", default=None, help="Generated JavaScript package name")
@click.option(
    "--swift-output-dir", default=None,
    help="Generate a Swift SDK into this directory (relative to the connector)",
)
@click.option(
    "--emulator-cmd", default=None,
    help="Shell command for the Data Connect emulator (split on whitespace)",
)
def dataconnect_sdk_command(
    connector_dir: str,
    connector_id: str,
    output_dir: str | None,
    package_name: str | None,
    swift_output_dir: str | None,
    emulator_cmd: str | None,
) -> None:
    """Write connector.yaml and generate SDK code for a connector."""
    generate: dict = {}
    if output_dir:
        generate["javascriptSdk"] = {"outputDir": output_dir}
        if package_name:
            generate["javascriptSdk"]["package"] = package_name
    if swift_output_dir:
        generate["swiftSdk"] = {"outputDir": swift_output_dir}

    sdk_info = build_sdk_info(
        connector_dir,
        connector_id,
        generate=generate or None,
        display_ios_warning=bool(swift_output_dir),
    )

    actuate(sdk_info, command=emulator_cmd)
