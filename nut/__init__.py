"""nut -- apply the same operation across many repositories grouped into a workspace."""

__version__ = "0.1.0"
