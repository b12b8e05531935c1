"""Docs Agent: a multi-user Google Docs and Drive task agent."""

__version__ = "0.1.0"
