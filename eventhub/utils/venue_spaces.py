"""Helpers for the free-text ``venue_space`` column (comma separated labels)."""

from __future__ import annotations


def parse_venue_spaces(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def format_spaces_label(value: str | None) -> str:
    """'Space: Not specified' | 'Space: Bar' | 'Spaces: Bar, Garden'."""
    spaces = parse_venue_spaces(value)
    if not spaces:
        return "Space: Not specified"
    label = "Spaces" if len(spaces) > 1 else "Space"
    return f"{label}: {', '.join(spaces)}"
