"""Output formatters."""

from __future__ import annotations

from ..errors import ConfigError
from .base import BaseFormatter, flatten_snapshot
from .csv_fmt import CsvFormatter
from .html_fmt import HtmlFormatter
from .json_fmt import JsonFormatter
from .prometheus import PrometheusFormatter
from .table import TableFormatter

__all__ = [
    "BaseFormatter",
    "CsvFormatter",
    "HtmlFormatter",
    "JsonFormatter",
    "PrometheusFormatter",
    "TableFormatter",
    "flatten_snapshot",
    "get_formatter",
]

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "json": JsonFormatter,
    "csv": CsvFormatter,
    "html": HtmlFormatter,
    "table": TableFormatter,
    "prometheus": PrometheusFormatter,
}


def get_formatter(fmt: str) -> BaseFormatter:
    """Get formatter by name."""
    if fmt not in FORMATTERS:
        raise ConfigError(
            code="unknown_format",
            message=f"Unknown format: {fmt}. Available: {', '.join(FORMATTERS.keys())}",
        )

    return FORMATTERS[fmt]()
