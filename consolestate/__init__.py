"""State model for an async runtime console: tasks, resources, async ops, histograms and terminal setup."""

__version__ = "0.1.0"