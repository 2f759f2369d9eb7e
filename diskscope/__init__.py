"""diskscope: categorized disk usage scanning with cached results."""

__version__ = "0.1.0"
