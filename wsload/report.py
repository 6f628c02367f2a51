from typing import List

from .models.events import CLOSE_COUNT, COUNTER_NAMES, ERROR_COUNT, MESSAGE_COUNT, TREND_NAMES
from .runner.executor import RunSummary
from .runner.virtual_user import Outcome


def format_summary(summary: RunSummary) -> str:
    """Render a run summary as plain text for the console."""
    lines: List[str] = []
    snapshot = summary.metrics
    elapsed = max(summary.elapsed_seconds, 1e-9)

    lines.append("=" * 80)
    lines.append("WEBSOCKET LOAD TEST RESULTS")
    lines.append("=" * 80)
    lines.append(f"Duration: {summary.elapsed_seconds:.2f}s")

    lines.append("")
    lines.append("Virtual users:")
    for outcome in Outcome:
        lines.append(f"  {outcome.value:<22}{summary.count(outcome):>10,}")
    lines.append(f"  {'iterations':<22}{summary.iterations:>10,}")
    if summary.forced_terminations:
        lines.append(f"  {'forced terminations':<22}{summary.forced_terminations:>10,}")

    if snapshot is None:
        lines.append("=" * 80)
        return "\n".join(lines)

    for topic in snapshot.topics():
        lines.append("")
        lines.append(f"Topic: {topic}")
        for name in COUNTER_NAMES:
            lines.append(f"  {name:<28}{snapshot.counter(name, topic):>12,}")
        rate = snapshot.counter(MESSAGE_COUNT, topic) / elapsed
        lines.append(f"  {'message_rate':<28}{rate:>12,.1f} msg/s")

        for name in TREND_NAMES:
            stats = snapshot.trend(name, topic)
            if not stats.count:
                lines.append(f"  {name:<28}{'no samples':>12}")
                continue
            lines.append(
                f"  {name:<28}avg={stats.avg:.2f} min={stats.min:.2f} med={stats.med:.2f} "
                f"p90={stats.p90:.2f} p95={stats.p95:.2f} p99={stats.p99:.2f} "
                f"max={stats.max:.2f} (n={stats.count})"
            )

    lines.append("")
    lines.append(
        f"Totals: messages={snapshot.counter(MESSAGE_COUNT):,} "
        f"closes={snapshot.counter(CLOSE_COUNT):,} errors={snapshot.counter(ERROR_COUNT):,}"
    )
    lines.append("=" * 80)
    return "\n".join(lines)
