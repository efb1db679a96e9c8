"""UI layer -- HTML pages, Rich console output and result formatters."""

from .dashboard import configure_logging, console, print_header, print_settings
from .output import create_result_json, format_text_result
from .pages import (
    render_download,
    render_index,
    render_probe,
    render_results,
    render_start,
    url_for,
)

__all__ = [
    "configure_logging",
    "console",
    "create_result_json",
    "format_text_result",
    "print_header",
    "print_settings",
    "render_download",
    "render_index",
    "render_probe",
    "render_results",
    "render_start",
    "url_for",
]
