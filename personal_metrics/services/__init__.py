"""Media synchronisation, enrichment and summary services."""
