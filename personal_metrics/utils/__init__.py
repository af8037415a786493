"""Utility helpers shared by the sync jobs and the API."""
