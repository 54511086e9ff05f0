"""Rate-limit-aware GitHub release publishing client."""

__version__ = "0.1.0"
