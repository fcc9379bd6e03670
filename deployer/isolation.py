"""Optional source isolation step run before packaging.

An isolator is any zero-argument callable that produces a self-contained copy
of the functions source (e.g. with unused dependencies pruned) and returns
the directory it wrote.
"""

import importlib
from pathlib import Path
from typing import Protocol

from .errors import DeployError

DEFAULT_ISOLATOR = "isolate_package:isolate"


class Isolator(Protocol):
    def __call__(self) -> str | Path: ...


def load_isolator(target: str = DEFAULT_ISOLATOR) -> Isolator:
    """Import an isolator given as "module:attribute".

    Raises:
        DeployError: If target is malformed, the module is not installed, or
                     the attribute is missing or not callable.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise DeployError(f"Invalid isolator {target!r}; expected 'module:attribute'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise DeployError(
            f"Could not load isolator module {module_name!r}. "
            "Install it or disable 'isolate' in firebase.json.",
            original=exc,
        ) from exc
    isolator = getattr(module, attr, None)
    if not callable(isolator):
        raise DeployError(f"Isolator {target!r} is not a callable")
    return isolator
