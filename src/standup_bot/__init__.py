"""Stand-up report generation and delivery."""

__version__ = "0.1.0"
