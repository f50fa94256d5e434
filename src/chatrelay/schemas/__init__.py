"""Pydantic models exchanged over the HTTP API."""
