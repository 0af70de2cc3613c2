"""Route corridor matching."""

from .grid import SignalGrid
from .matcher import match_route
from .service import coerce_route, find_matches, match_signals

__all__ = ["SignalGrid", "match_route", "coerce_route", "find_matches", "match_signals"]
