"""Performance tracking and display utilities."""

from typing import Optional

from rich.console import Console
from rich.table import Table

from .models import BatchPerformance


def format_time(milliseconds: int) -> str:
    """Format a duration as '850ms', '12.3s' or '2m 5.0s'."""
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    elif milliseconds < 60000:
        return f"{milliseconds / 1000:.1f}s"
    else:
        minutes = milliseconds // 60000
        seconds = (milliseconds % 60000) / 1000
        return f"{minutes}m {seconds:.1f}s"


class PerformanceTracker:
    """Accumulates per-image results for the current batch."""

    def __init__(self, model_name: str = ""):
        """
        Initialize performance tracker.

        Args:
            model_name: Name of the model being tracked
        """
        self.performance = BatchPerformance(model_name=model_name)

    def reset(self, model_name: Optional[str] = None) -> None:
        """Start a new batch, dropping all accumulated figures."""
        self.performance = BatchPerformance(
            model_name=model_name if model_name is not None else self.performance.model_name
        )

    def record_success(self, elapsed_millis: int) -> None:
        """
        Record a successful inference call.

        Args:
            elapsed_millis: Duration reported for the call
        """
        self.performance.success_count += 1
        self.performance.total_millis += elapsed_millis

    def record_error(self) -> None:
        """Record a failed inference call."""
        self.performance.error_count += 1

    @property
    def total_millis(self) -> int:
        return self.performance.total_millis

    @property
    def stats(self) -> BatchPerformance:
        """Get a copy of the current performance statistics."""
        return self.performance.model_copy()

    def display_summary(self, console: Console) -> None:
        """Display performance metrics in a formatted table."""
        console.print("\n[bold]Performance Summary[/bold]")

        table = Table()
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="magenta")

        table.add_row("Model", self.performance.model_name)
        table.add_row("Success Rate", f"{self.performance.success_rate:.1%}")
        table.add_row("Images Named", str(self.performance.success_count))
        table.add_row("Errors", str(self.performance.error_count))
        table.add_row("Average Time/Image", format_time(int(self.performance.avg_millis_per_image)))
        table.add_row("Total Time", format_time(self.performance.total_millis))

        console.print(table)
