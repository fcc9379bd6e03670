"""Terminal notices in the "label: message" bullet style."""

import click


def bold(text: object) -> str:
    return click.style(str(text), bold=True)


def log_bullet(message: str) -> None:
    click.echo(f"{click.style('i', fg='cyan', bold=True)}  {message}")


def log_labeled_bullet(label: str, message: str) -> None:
    log_bullet(f"{click.style(label + ':', fg='cyan', bold=True)} {message}")


def format_size(num_bytes: int) -> str:
    """Render a byte count with base-1024 units, e.g. 1536 -> "1.5 KB"."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"
