"""Thin wrapper around the Data Connect emulator binary's SDK generator."""

import logging
import os
import shlex
import subprocess
from pathlib import Path

from ..errors import DeployError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "dataconnect-emulator"
BINARY_PATH_ENV = "DATACONNECT_EMULATOR_BINARY_PATH"


def emulator_command() -> str:
    """Command used to invoke the emulator; the env var wins over the default."""
    return os.environ.get(BINARY_PATH_ENV) or DEFAULT_COMMAND


class DataConnectEmulator:
    """Entry points into the external emulator process."""

    @staticmethod
    def generate(
        config_dir: str | Path,
        connector_id: str,
        command: str | None = None,
    ) -> str:
        """Run SDK code generation for one connector and return its stdout.

        Raises:
            DeployError: If the binary is missing or exits non-zero.
        """
        cmd = shlex.split(command or emulator_command()) + [
            "--logtostderr",
            "-v=2",
            "generate",
            f"--config_dir={config_dir}",
            f"--connector_id={connector_id}",
        ]
        logger.debug("Running %s", shlex.join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise DeployError(
                f"Data Connect emulator not found: {cmd[0]}. "
                f"Install it or set {BINARY_PATH_ENV}.",
                original=exc,
            ) from exc
        if proc.returncode != 0:
            raise DeployError(
                f"Error running Data Connect SDK generation for {connector_id}: "
                f"{proc.stderr.strip()}"
            )
        return proc.stdout
