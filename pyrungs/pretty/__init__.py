"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, List, Optional

from ..typing import StackEntry, StackState

def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (AttributeError, ValueError, OSError):
        return 80


def header(text: str, width: Optional[int] = None) -> str:
    """Create a boxed header."""
    width = max(width or get_term_width(), len(text) + 4)
    h_line = "─" * (width - 2)
    v_line = "│"
    result = [
        f"┌{h_line}┐",
        f"{v_line} {text}{' ' * (width - len(text) - 3)}{v_line}",
        f"└{h_line}┘"
    ]
    return "\n".join(result)


def print_header(text: str, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(text), file=file)


def format_entry(position: int, entry: StackEntry) -> List[str]:
    flags = " [draft]" if entry.draft else ""
    lines = [f"  {position}. #{entry.number} {entry.title}{flags}",
             f"     {entry.head} -> {entry.base}"]
    if entry.url:
        lines.append(f"     {entry.url}")
    for commit in entry.commits:
        lines.append(f"     - {commit.short_hash} {commit.message}")
    return lines


def format_stack(state: StackState, trunk: str) -> str:
    """Render the chain bottom-up, then unstacked commits and warnings."""
    lines: List[str] = []
    if state.entries:
        lines.append(f"Stack on {trunk} ({len(state.entries)} PR(s)):")
        for position, entry in enumerate(state.entries, start=1):
            lines.extend(format_entry(position, entry))
    else:
        lines.append(f"No stacked PRs on {trunk}.")

    if state.unstacked_commits:
        lines.append("")
        lines.append(f"Unstacked commits ({len(state.unstacked_commits)}):")
        for commit in state.unstacked_commits:
            lines.append(f"  - {commit.short_hash} {commit.message}")
        lines.append("Run 'rungs stack' to push them as a new PR.")

    if state.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  ! {w}" for w in state.warnings)
    return "\n".join(lines)
