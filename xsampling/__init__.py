"""Trace sampling: local rule strategies, central rule sets, reservoirs and a daemon client."""

__version__ = "0.1.0"