"""Persistence collaborators for documents and media objects."""
