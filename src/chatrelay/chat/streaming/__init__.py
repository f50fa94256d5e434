"""Streaming multiplexer and its event types."""
