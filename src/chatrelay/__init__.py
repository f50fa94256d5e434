"""Streaming multi-provider chat relay with server- and client-executed tools."""

__version__ = "0.1.0"
