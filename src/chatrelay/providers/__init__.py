"""Vendor connectors that stream model output as neutral provider events."""
