from __future__ import annotations

import pytest
from rich.console import Console

from image_namer.performance_tracker import PerformanceTracker, format_time


@pytest.mark.parametrize(
    "millis, expected",
    [(0, "0ms"), (850, "850ms"), (1000, "1.0s"), (12345, "12.3s"), (125000, "2m 5.0s")],
)
def test_format_time(millis: int, expected: str) -> None:
    assert format_time(millis) == expected


def test_tracker_accumulates_and_resets() -> None:
    tracker = PerformanceTracker("llava:7b")
    tracker.record_success(1200)
    tracker.record_success(800)
    tracker.record_error()

    stats = tracker.stats
    assert stats.success_count == 2
    assert stats.error_count == 1
    assert tracker.total_millis == 2000
    assert stats.avg_millis_per_image == 1000
    assert stats.success_rate == pytest.approx(2 / 3)

    tracker.reset("gemma3:4b")
    assert tracker.total_millis == 0
    assert tracker.stats.model_name == "gemma3:4b"
    assert stats.success_count == 2


def test_display_summary_renders_table() -> None:
    console = Console(record=True, width=120)
    tracker = PerformanceTracker("llava:7b")
    tracker.record_success(1500)

    tracker.display_summary(console)

    text = console.export_text()
    assert "Performance Summary" in text
    assert "llava:7b" in text
    assert "1.5s" in text
