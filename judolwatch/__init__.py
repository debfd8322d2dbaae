"""JudolWatch: monitoring console client for online gambling domain detection."""

__version__ = "1.0.0"
