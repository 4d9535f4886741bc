"""PoWorth — commit-reveal prediction market."""

__version__ = "0.1.0"
