"""Runtime configuration: remote fetch and canonical form for hashing."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .errors import DeployError

logger = logging.getLogger(__name__)

CONFIG_UNAVAILABLE_MESSAGE = (
    "Cloud Runtime Config is currently experiencing issues, "
    "which is preventing your functions from being deployed. "
    "Please wait a few minutes and then try to deploy your functions again."
    "\nRun `firebase deploy --except functions` if you want to continue "
    "deploying the rest of your project."
)


def get_functions_config(
    project_id: str,
    materialize_all: Callable[[str], dict[str, Any]],
) -> dict[str, Any]:
    """Fetch every runtime config variable for project_id.

    Args:
        project_id:      Target project.
        materialize_all: Client call returning the materialized config tree.

    Returns:
        The materialized config, or {} if the service failed with anything
        other than a 500/503.

    Raises:
        DeployError: If the service reports 500 or 503, or fails without a
                     status code.
    """
    try:
        return materialize_all(project_id)
    except Exception as err:
        logger.debug("Runtime config fetch failed: %r", err)
        status = _status_code(err)
        if status is None:
            logger.debug("Got unexpected error from Runtime Config; it has no status code: %r", err)
            status = 500
        if status in (500, 503):
            raise DeployError(CONFIG_UNAVAILABLE_MESSAGE, original=err) from err
    # Any other status degrades to an empty config.
    return {}


def _status_code(err: BaseException) -> int | None:
    """Pull an HTTP status out of the error shapes API clients raise."""
    status = getattr(err, "status_code", None)
    if status is None:
        response = getattr(err, "response", None)
        status = getattr(response, "status_code", None)
    if status is None:
        context = getattr(err, "context", None)
        if isinstance(context, Mapping):
            response = context.get("response")
            if isinstance(response, Mapping):
                status = response.get("statusCode")
    return int(status) if status else None


def convert_to_sorted_key_value_array(config: Any) -> Any:
    """Canonical form of a JSON-compatible value for stable hashing.

    Mappings become [{"key": k, "value": ...}, ...] sorted by key, recursively,
    including mappings nested inside lists.  List element order is kept.
    Scalars and None come back unchanged.  Already-canonical records pass
    through as-is, so applying this twice gives the same result.

    Raises:
        ValueError: If a mapping or list contains itself.
    """
    return _canonical(config, ())


class _Record(dict):
    """A {"key", "value"} pair whose value is already canonical."""


def _canonical(config: Any, ancestors: tuple[int, ...]) -> Any:
    if isinstance(config, _Record):
        return config
    if not isinstance(config, (Mapping, list)):
        return config
    if id(config) in ancestors:
        raise ValueError("Runtime config contains a reference cycle")
    ancestors = ancestors + (id(config),)
    if isinstance(config, list):
        return [_canonical(item, ancestors) for item in config]
    return [
        _Record(key=key, value=_canonical(config[key], ancestors))
        for key in sorted(config)
    ]
