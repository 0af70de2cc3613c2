"""Route group exports."""

from . import clusters, health, signals

__all__ = ["clusters", "health", "signals"]
