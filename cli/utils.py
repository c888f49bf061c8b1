"""Formatting helpers for CLI output."""

from typing import Optional


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def format_age(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def render_queue_status(status: dict) -> str:
    """Render a /sync/queue payload as a plain-text report."""
    lines = ["Status        Count   Size         Avg attempts"]
    for name, count in status["counts_by_status"].items():
        size = status["total_size_by_status"].get(name, 0)
        avg = status["average_attempts_by_status"].get(name, 0.0)
        lines.append(f"{name:<13} {count:>5}   {format_file_size(size):<12} {avg:.2f}")

    outstanding = ", ".join(f"{k}={v}" for k, v in status["outstanding_by_priority"].items())
    lines.append(f"Outstanding by priority: {outstanding}")
    lines.append(f"Oldest pending: {format_age(status.get('oldest_pending_age_seconds'))}")

    failed = status.get("failed") or []
    if failed:
        lines.append("Failed:")
        for record in failed:
            lines.append(f"  {record['file_id']}  attempts={record['attempts']}  {record.get('last_error') or ''}")
    return "\n".join(lines)
