"""Employee time clock: pairs clock events into daily work summaries."""

__version__ = "0.1.0"
