"""Fatal, user-facing errors raised by deploy operations."""

import click


class DeployError(click.ClickException):
    """An error that should halt the current deploy and be shown verbatim.

    Args:
        message:   Human-readable explanation, printed by the CLI as-is.
        original:  The underlying exception, if this wraps one.
        exit_code: Process exit status when raised out of a click command.
    """

    def __init__(
        self,
        message: str,
        original: BaseException | None = None,
        exit_code: int = 1,
    ) -> None:
        super().__init__(message)
        self.original = original
        self.exit_code = exit_code
