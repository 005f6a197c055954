import sys
from datetime import datetime
from typing import NoReturn, Optional

import click


def fail(message: str) -> NoReturn:
    click.secho(f"Error: {message}", fg="red")
    sys.exit(1)


def format_timestamp(value: Optional[int]) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M")


def format_score(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:g}"
