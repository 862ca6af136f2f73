from datetime import date
from typing import Any, Optional


class ReviewBoxError(Exception):
    """Base class for every failure raised by reviewbox"""


class ValidationError(ReviewBoxError):
    """Malformed input, rejected before anything is mutated"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class InvalidPattern(ValidationError):
    """Pattern steps are empty, non-contiguous or carry a non-positive interval"""

    def __init__(self, message: str):
        super().__init__("steps", message)


class OutOfRangeDate(ReviewBoxError):
    """Requested review date lies outside [earliest, latest]"""

    def __init__(self, requested: date, earliest: date, latest: date):
        self.requested = requested
        self.earliest = earliest
        self.latest = latest
        super().__init__(
            f"requested date {requested.isoformat()} must be between "
            f"{earliest.isoformat()} and {latest.isoformat()}"
        )


class IncompatiblePattern(ReviewBoxError):
    """Item schedule would not survive a move into the target box"""

    def __init__(self, item_id: Any, box_id: Any, message: Optional[str] = None):
        self.item_id = item_id
        self.box_id = box_id
        super().__init__(
            message
            or f"item {item_id} has completed reviews and its pattern is incompatible with box {box_id}"
        )


class NotFound(ReviewBoxError):
    """Referenced pattern, box, category, item or review date does not exist"""

    def __init__(self, kind: str, identifier: Any):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class TransportError(ReviewBoxError):
    """The item service could not complete the request"""


class MutationInFlight(ReviewBoxError):
    """Another mutation for the same item has not resolved yet"""

    def __init__(self, item_id: Any):
        self.item_id = item_id
        super().__init__(f"a mutation for item {item_id} is already in flight")
