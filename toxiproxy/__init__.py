"""Channels, chainable toxics and collections for simulating network conditions."""

__version__ = "2.0.0"

__all__ = [
    "direction",
    "io_chan",
    "testhelper",
    "toxic",
    "toxics",
    "toxic_collection",
    "proxy_collection",
]