"""File-system driven route code generator with an incremental build cache."""

__version__ = "0.1.0"
