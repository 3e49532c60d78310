import uuid


class MatchingError(Exception):
    """Base class for matching engine errors."""


class RequestNotFoundError(MatchingError):

    def __init__(self, rental_request_id: uuid.UUID):
        super().__init__(f"Rental request {rental_request_id} not found")
        self.rental_request_id = rental_request_id


class PropertyNotFoundError(MatchingError):

    def __init__(self, property_id: uuid.UUID):
        super().__init__(f"Property {property_id} not found")
        self.property_id = property_id


class MatchNotFoundError(MatchingError):

    def __init__(self, match_id: uuid.UUID):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class PoolTransitionError(MatchingError):
    """Raised when a rental request cannot move to the requested pool status."""

    def __init__(self, rental_request_id: uuid.UUID, current: str, target: str):
        super().__init__(
            f"Rental request {rental_request_id} cannot move from {current} to {target}"
        )
        self.rental_request_id = rental_request_id
        self.current = current
        self.target = target


class TrustClassifierError(MatchingError):
    """Raised by a trust classifier that cannot produce an assessment."""
