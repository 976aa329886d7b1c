"""Transaction orchestration and governance state for the compute marketplace."""

__version__ = "0.1.0"
