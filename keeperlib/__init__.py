"""Keys, observations, report encoding, keyed shuffling, caching, contexts and worker pools for upkeep automation."""

__version__ = "0.1.0"

__all__ = [
    "cache",
    "cancellation",
    "config",
    "keys",
    "rand",
    "reports",
    "selection",
    "types",
    "worker",
]