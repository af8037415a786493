"""Clients for the third-party APIs that feed the widgets."""
