"""User accounts REST resource backed by a pluggable identity backend."""

__version__ = "0.1.0"
