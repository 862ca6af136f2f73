from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

import structlog

from reviewbox.compatibility import compatible
from reviewbox.errors import IncompatiblePattern, NotFound
from reviewbox.schemas import UNCLASSIFIED, BoxResponse, ItemResponse, PatternModel

logger = structlog.get_logger(__name__)


def is_unclassified(box: Union[BoxResponse, int, str, None]) -> bool:
    """True for the unclassified pseudo-box (no box, or the sentinel)"""
    return box is None or box == UNCLASSIFIED


@dataclass(frozen=True)
class PlacementDecision:
    """Outcome of a successful placement check"""
    box_id: Optional[int]
    pattern_id: Optional[int]
    regenerate: bool  # schedule must be rebuilt from pattern_id


class PlacementGate:
    """Decides whether an item may move into a box"""

    def __init__(self, patterns: Iterable[PatternModel]):
        self._patterns: Dict[int, PatternModel] = {p.id: p for p in patterns}

    def _pattern(self, pattern_id: int) -> PatternModel:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            raise NotFound("pattern", pattern_id)
        return pattern

    def check(self, item: ItemResponse, box: Optional[BoxResponse]) -> PlacementDecision:
        """
        Check a placement without touching the item.

        - unclassified, or a box without a pattern: always allowed, the
          item keeps its pattern and schedule
        - item without completed reviews: always allowed; a box pattern
          replaces the item's pattern and the schedule is regenerated
        - item with completed reviews: the box pattern must be compatible
          with the steps the item's schedule was generated with (its
          pattern when none were recorded); the schedule is kept

        Raises:
            IncompatiblePattern: completed reviews and incompatible (or
                unknown) schedule steps
            NotFound: a referenced pattern no longer exists
        """
        if is_unclassified(box) or box.pattern_id is None:
            return PlacementDecision(
                box_id=None if is_unclassified(box) else box.id,
                pattern_id=item.pattern_id,
                regenerate=False,
            )

        if not item.has_completed_reviews:
            if box.pattern_id == item.pattern_id:
                return PlacementDecision(box_id=box.id, pattern_id=item.pattern_id, regenerate=not item.review_dates)
            self._pattern(box.pattern_id)
            return PlacementDecision(box_id=box.id, pattern_id=box.pattern_id, regenerate=True)

        # the recorded steps outlive edits to the item's pattern
        held = item.schedule_steps
        if held is None:
            if item.pattern_id is None:
                logger.info("placement_rejected", item_id=item.item_id, box_id=box.id, reason="no_current_pattern")
                raise IncompatiblePattern(
                    item.item_id, box.id,
                    f"item {item.item_id} has completed reviews but no pattern to compare with box {box.id}",
                )
            held = self._pattern(item.pattern_id)

        if not compatible(held, self._pattern(box.pattern_id)):
            logger.info("placement_rejected", item_id=item.item_id, box_id=box.id, reason="incompatible_pattern")
            raise IncompatiblePattern(item.item_id, box.id)

        return PlacementDecision(box_id=box.id, pattern_id=box.pattern_id, regenerate=False)

    def can_place(self, item: ItemResponse, box: Optional[BoxResponse]) -> bool:
        try:
            self.check(item, box)
        except (IncompatiblePattern, NotFound):
            return False
        return True

    def allowed_boxes(self, item: ItemResponse, boxes: Iterable[BoxResponse]) -> List[BoxResponse]:
        """Boxes the item may be moved into"""
        return [box for box in boxes if self.can_place(item, box)]
