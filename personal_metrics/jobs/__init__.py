"""Provider sync jobs."""
