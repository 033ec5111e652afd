"""WOTC state submission orchestration and credential vault."""

__version__ = "0.1.0"
