"""depsentinel: dependency manifest update engines."""

__version__ = "0.1.0"
