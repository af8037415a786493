"""Pure transformations from upstream payloads into widget records."""
