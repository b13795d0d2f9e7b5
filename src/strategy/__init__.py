from .detector import ArbDetector, RoundTrip, VenueModel, round_trip
from .opportunity import ArbOpportunity, Direction

__all__ = [
    "ArbOpportunity",
    "Direction",
    "ArbDetector",
    "VenueModel",
    "RoundTrip",
    "round_trip",
]
