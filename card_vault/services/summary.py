from __future__ import annotations

from ..models.execution_result import ExecutionResult

"""SUMMARY line rendering for card registration runs.

Format:
    SUMMARY rows=<n> attempted=<a> registered=<r> failed=<f> skipped=<s>
    with_photo=<p> without_photo=<q> errors=<e> elapsed_sec=<t>
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ExecutionResult) -> str:
    """Render a SUMMARY line from an ExecutionResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> r = ExecutionResult(run_id="r", source="s", endpoint_url="u", attempted=3,
        ...     registered=2, failed=1, total_rows=3, started_at=start, finished_at=end)
        >>> render_summary_line(r)  # doctest: +ELLIPSIS
        'SUMMARY rows=3 attempted=3 registered=2 failed=1 skipped=0 ... elapsed_sec=2'
    """
    return (
        f"SUMMARY rows={result.total_rows} "
        f"attempted={result.attempted} "
        f"registered={result.registered} "
        f"failed={result.failed} "
        f"skipped={result.skipped} "
        f"with_photo={result.with_photo} "
        f"without_photo={result.without_photo} "
        f"errors={len(result.errors)} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
