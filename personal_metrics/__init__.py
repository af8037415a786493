"""Personal metrics aggregation backend."""

__version__ = "0.1.0"
