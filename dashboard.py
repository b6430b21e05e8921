"""Startup banner printed once the listener is bound."""

from __future__ import annotations

from typing import TYPE_CHECKING

from config import ASSETS_PREFIX

if TYPE_CHECKING:
    from app import Site

BOX_WIDTH = 60


def _row(text: str = "") -> str:
    return f"| {text:<{BOX_WIDTH - 4}} |"


def render_dashboard(site: Site, port: int) -> str:
    rule = "+" + "-" * (BOX_WIDTH - 2) + "+"
    page_count = len(site.content)
    lines = [
        rule,
        _row("Fast Static Server".center(BOX_WIDTH - 4)),
        _row("Optimized for HTML/CSS/JS".center(BOX_WIDTH - 4)),
        rule,
        _row(f"Server:  http://localhost:{port}"),
        _row(f"Name:    {site.settings.server_name}"),
        _row(f"Content: {page_count} HTML files in memory"),
        _row(f"Assets:  {ASSETS_PREFIX}* (long-lived cache)"),
        rule,
        _row(f"STATIC PAGES: {page_count} at http://localhost:{port}/[filename]"),
        _row("API HELPERS:  /helloworld, /health (API key required)"),
        rule,
        "Press Ctrl+C to stop",
    ]
    return "\n".join(lines)
