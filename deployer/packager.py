"""Functions source packager: zips a source dir and fingerprints its contents."""

import asyncio
import inspect
import json
import logging
import os
import stat
import tempfile
import time
import zipfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import DeployError
from .isolation import Isolator, load_isolator
from .runtime_config import convert_to_sorted_key_value_array
from .utils.fs_walk import readdir_recursive
from .utils.hashing import compact_json, get_source_hash
from .utils.output import bold, format_size, log_labeled_bullet

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Archive configuration
# ---------------------------------------------------------------------------

CONFIG_DEST_FILE = ".runtimeconfig.json"
CONFIG_DEST_MODE = 0o644

DEFAULT_IGNORE: list[str] = ["node_modules", ".git"]

# Always appended after the caller's patterns: debug logs written next to
# firebase.json, and any stale runtime config (re-written from current values).
FIXED_IGNORE: list[str] = [
    "firebase-debug.log",
    "firebase-debug.*.log",
    CONFIG_DEST_FILE,
]

HASH_SEPARATOR = "."

SOURCE_UNREADABLE_MESSAGE = (
    "Could not read source directory. Remove links and shortcuts and try again."
)


@dataclass(frozen=True)
class PackagedSource:
    """Result of one packaging pass.

    path_to_source is a temporary zip owned by the caller, who must delete it.
    """

    path_to_source: str
    hash: str


def _temp_zip_path() -> str:
    fd, name = tempfile.mkstemp(prefix="firebase-functions-", suffix=".zip")
    os.close(fd)
    return name


def effective_ignore(config: Mapping[str, Any]) -> list[str]:
    """Caller patterns (or the defaults) followed by FIXED_IGNORE.

    An explicit empty list disables the defaults; only a missing "ignore"
    falls back to DEFAULT_IGNORE.
    """
    ignore = config.get("ignore")
    if ignore is None:
        ignore = DEFAULT_IGNORE
    return list(ignore) + FIXED_IGNORE


def package_source(
    source_dir: str | Path,
    config: Mapping[str, Any],
    runtime_config: Any = None,
    *,
    tmp_factory: Callable[[], str] = _temp_zip_path,
) -> PackagedSource:
    """Zip source_dir into a temporary archive and fingerprint it.

    Args:
        source_dir:     Functions source directory.
        config:         Validated functions config; only "ignore" is read.
        runtime_config: Optional JSON-compatible config injected into the
                        archive as .runtimeconfig.json.  None means absent.
        tmp_factory:    Returns a fresh, unique path for the archive.

    Returns:
        PackagedSource with the archive path and the "."-joined hash list:
        one SHA-256 per file in enumeration order, then the canonical
        runtime config JSON if one was supplied.

    Raises:
        DeployError: If the directory cannot be read or the archive cannot be
                     written (exit code 1, original error attached).
    """
    tmp_file = tmp_factory()
    ignore = effective_ignore(config)
    hashes: list[str] = []

    try:
        files = readdir_recursive(source_dir, ignore)
        with zipfile.ZipFile(tmp_file, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in files:
                hashes.append(get_source_hash(entry.path))
                info = zipfile.ZipInfo.from_file(entry.path, arcname=entry.name)
                info.external_attr = (entry.mode & 0xFFFF) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
                with open(entry.path, "rb") as src, archive.open(info, "w") as dst:
                    for chunk in iter(lambda: src.read(65536), b""):
                        dst.write(chunk)

            if runtime_config is not None:
                # Key order must not affect the hash, so hash the sorted form.
                canonical = convert_to_sorted_key_value_array(runtime_config)
                hashes.append(compact_json(canonical))

                info = zipfile.ZipInfo(CONFIG_DEST_FILE, date_time=time.localtime()[:6])
                info.external_attr = (stat.S_IFREG | CONFIG_DEST_MODE) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(
                    info, json.dumps(runtime_config, indent=2, ensure_ascii=False)
                )
    except (OSError, ValueError, TypeError, zipfile.LargeZipFile) as err:
        logger.debug("Packaging %s failed: %r", source_dir, err)
        Path(tmp_file).unlink(missing_ok=True)
        raise DeployError(SOURCE_UNREADABLE_MESSAGE, original=err, exit_code=1) from err

    size = os.path.getsize(tmp_file)
    log_labeled_bullet(
        "functions",
        f"packaged {bold(source_dir)} ({format_size(size)}) for uploading",
    )
    return PackagedSource(path_to_source=tmp_file, hash=HASH_SEPARATOR.join(hashes))


def prepare_functions_upload(
    source_dir: str | Path,
    config: Mapping[str, Any],
    runtime_config: Any = None,
    *,
    isolator: Isolator | None = None,
    tmp_factory: Callable[[], str] = _temp_zip_path,
) -> PackagedSource:
    """Package source_dir, or an isolated copy of it when config["isolate"] is True.

    Exactly one directory is packaged.  An isolation failure is re-raised
    as-is; there is no fallback to packaging source_dir directly.
    """
    if config.get("isolate") is not True:
        return package_source(source_dir, config, runtime_config, tmp_factory=tmp_factory)

    log_labeled_bullet("functions", "Start isolating the source folder...")
    try:
        if isolator is None:
            isolator = load_isolator()
        result = isolator()
        if inspect.iscoroutine(result):
            result = asyncio.run(result)
        isolate_dir = str(result)
    except Exception as err:
        log_labeled_bullet("functions", f"+++ Failed to isolate: {err}")
        raise
    log_labeled_bullet("functions", f"Finished isolation at {bold(isolate_dir)}")

    return package_source(isolate_dir, config, runtime_config, tmp_factory=tmp_factory)
