"""feeddeck: incremental YouTube feed synchronization."""

__version__ = "0.1.0"
