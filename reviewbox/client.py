from datetime import date
from typing import Callable, Dict, List, Optional

import structlog

from reviewbox.cache import DualCacheSynchronizer, query_key, resolve_location_key
from reviewbox.errors import NotFound, ValidationError
from reviewbox.placement import PlacementGate, is_unclassified
from reviewbox.reschedule import validate_request_date
from reviewbox.schemas import (
    BoxResponse, CategoryResponse, DailyReviewFilters, DailyReviewsResponse,
    ItemCreate, ItemResponse, ItemUnfinish, ItemUpdate, OverduePolicy,
    PatternModel, ReviewDateToggle, ReviewDateUpdate, SummaryCounts
)
from reviewbox.service import ItemService

logger = structlog.get_logger(__name__)


class ReviewClient:
    """
    Client-side orchestration of item mutations.

    Local checks (validation, placement, reschedule bounds) run before any
    request is sent. Successful responses are folded into both caches by
    the synchronizer; failures leave them untouched.
    """

    def __init__(
        self,
        service: ItemService,
        synchronizer: Optional[DualCacheSynchronizer] = None,
        clock: Callable[[], date] = None,
    ):
        self.service = service
        self.sync = synchronizer or DualCacheSynchronizer()
        self._clock = clock or date.today
        self.patterns: Dict[int, PatternModel] = {}
        self.boxes: Dict[int, BoxResponse] = {}
        self.categories: Dict[int, CategoryResponse] = {}

    def today(self) -> date:
        return self._clock()

    # --- reference data --------------------------------------------------

    async def load_patterns(self) -> List[PatternModel]:
        patterns = await self.service.fetch_patterns()
        self.patterns = {p.id: p for p in patterns}
        return patterns

    async def load_categories(self) -> List[CategoryResponse]:
        categories = await self.service.fetch_categories()
        self.categories = {c.id: c for c in categories}
        return categories

    async def load_boxes(self, category_id: int) -> List[BoxResponse]:
        boxes = await self.service.fetch_boxes(category_id)
        for box in boxes:
            self.boxes[box.id] = box
        return boxes

    async def _box(self, box_id: int, category_id: Optional[int]) -> BoxResponse:
        if box_id not in self.boxes:
            if category_id is not None:
                await self.load_boxes(category_id)
            else:
                for category in await self.load_categories():
                    await self.load_boxes(category.id)
        box = self.boxes.get(box_id)
        if box is None:
            raise NotFound("box", box_id)
        return box

    async def gate(self) -> PlacementGate:
        if not self.patterns:
            await self.load_patterns()
        return PlacementGate(self.patterns.values())

    # --- item queries ----------------------------------------------------

    async def load_items(self, box_id=None, category_id=None, refresh: bool = False) -> List[ItemResponse]:
        """
        Items at a location, served from the query cache when possible.

        A fetch overwrites both views for the location, which also
        reconciles items that were inserted locally after creation.
        """
        cached = self.sync.queries.get(query_key(box_id, category_id))
        if cached is not None and not refresh:
            return cached

        if not is_unclassified(box_id):
            items = await self.service.fetch_items_by_box(box_id)
        elif not is_unclassified(category_id):
            items = await self.service.fetch_unclassified_items_by_category(category_id)
        else:
            items = await self.service.fetch_unclassified_items()
        self.sync.apply_fetch(box_id, category_id, items)
        return items

    async def load_finished_items(self, box_id=None, category_id=None) -> List[ItemResponse]:
        return await self.service.fetch_finished_items(
            None if is_unclassified(box_id) else box_id,
            None if is_unclassified(category_id) else category_id,
        )

    async def load_todays_reviews(self, filters: Optional[DailyReviewFilters] = None) -> DailyReviewsResponse:
        if self.sync.todays_reviews is not None and filters is None:
            return self.sync.todays_reviews
        reviews = await self.service.fetch_todays_reviews(filters)
        if filters is None:
            self.sync.todays_reviews = reviews
        return reviews

    async def load_summary(self) -> SummaryCounts:
        if self.sync.summary is None:
            self.sync.summary = await self.service.fetch_summary()
        return self.sync.summary

    async def item(self, item_id: int) -> ItemResponse:
        item = self.sync.lookup(item_id)
        if item is None:
            item = await self.service.fetch_item(item_id)
        return item

    # --- mutations -------------------------------------------------------

    def _validate_draft(self, name: Optional[str], learned_date: Optional[date]) -> None:
        if name is not None and not name.strip():
            raise ValidationError("name", "item name must not be empty")
        if learned_date is not None and learned_date > self.today():
            raise ValidationError("learned_date", "learned date cannot be in the future")

    async def create_item(self, draft: ItemCreate) -> ItemResponse:
        self._validate_draft(draft.name, draft.learned_date)
        created = await self.service.create_item(draft)
        return self.sync.apply_created(created)

    async def update_item(self, item: ItemResponse, patch: ItemUpdate, reject_if_busy: bool = False) -> ItemResponse:
        """
        Send a partial update; moves into a box are checked against the
        placement gate first and rejected without a request when they would
        break the item's schedule.
        """
        self._validate_draft(patch.name, patch.learned_date)

        async def send() -> ItemResponse:
            current = self.sync.lookup(item.item_id) or item
            if "box_id" in patch.model_fields_set and patch.box_id != current.box_id:
                box = None if is_unclassified(patch.box_id) else await self._box(patch.box_id, patch.category_id)
                (await self.gate()).check(current, box)
            return await self.service.update_item(item.item_id, patch)

        def apply(response: ItemResponse) -> ItemResponse:
            return self.sync.apply_updated(self.sync.lookup(item.item_id) or item, response)

        return await self.sync.run_mutation(item.item_id, send, apply, reject=reject_if_busy)

    async def move_item(self, item: ItemResponse, box_id=None, category_id=None) -> ItemResponse:
        """Place an item into a box, or into the (category's) unclassified area"""
        if not is_unclassified(box_id):
            box = await self._box(box_id, category_id)
            category_id = box.category_id
        patch = ItemUpdate(
            box_id=None if is_unclassified(box_id) else box_id,
            category_id=None if is_unclassified(category_id) else category_id,
        )
        return await self.update_item(item, patch)

    async def delete_item(self, item: ItemResponse) -> None:
        async def send():
            await self.service.delete_item(item.item_id)

        await self.sync.run_mutation(item.item_id, send, lambda _: self.sync.apply_removed(item))

    async def finish_item(self, item: ItemResponse) -> ItemResponse:
        async def send() -> ItemResponse:
            return await self.service.mark_item_finished(item.item_id)

        def apply(response: ItemResponse) -> ItemResponse:
            self.sync.apply_removed(self.sync.lookup(item.item_id) or item)
            return response

        return await self.sync.run_mutation(item.item_id, send, apply)

    async def unfinish_item(self, item: ItemResponse, request: ItemUnfinish) -> ItemResponse:
        self._validate_draft(None, request.learned_date)

        async def send() -> ItemResponse:
            return await self.service.mark_item_unfinished(item.item_id, request)

        return await self.sync.run_mutation(item.item_id, send, self.sync.apply_created)

    async def complete_review_date(self, item: ItemResponse, review_date_id: int) -> ItemResponse:
        return await self._toggle(item, review_date_id, True)

    async def incomplete_review_date(self, item: ItemResponse, review_date_id: int) -> ItemResponse:
        return await self._toggle(item, review_date_id, False)

    async def _toggle(self, item: ItemResponse, review_date_id: int, completed: bool) -> ItemResponse:
        review = item.review_date(review_date_id)
        if review is None:
            raise NotFound("review date", review_date_id)
        toggle = ReviewDateToggle(step_number=review.step_number)

        async def send() -> ItemResponse:
            if completed:
                return await self.service.complete_review_date(item.item_id, review_date_id, toggle)
            return await self.service.incomplete_review_date(item.item_id, review_date_id, toggle)

        def apply(response: ItemResponse) -> ItemResponse:
            return self.sync.apply_updated(self.sync.lookup(item.item_id) or item, response)

        return await self.sync.run_mutation(item.item_id, send, apply)

    async def reschedule_review_date(
        self,
        item: ItemResponse,
        review_date_id: int,
        request_scheduled_date: date,
        overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED,
    ) -> ItemResponse:
        """
        Rewind one review date. The date range is checked locally; the
        authoritative cascade happens on the service, along the steps the
        item's schedule was generated with.
        """
        review = item.review_date(review_date_id)
        if review is None:
            raise NotFound("review date", review_date_id)
        validate_request_date(review.initial_scheduled_date, request_scheduled_date, self.today())

        held = item.schedule_steps
        if held is None:
            if item.pattern_id is None:
                raise ValidationError("pattern_id", f"item {item.item_id} has no pattern")
            if not self.patterns:
                await self.load_patterns()
            pattern = self.patterns.get(item.pattern_id)
            if pattern is None:
                raise NotFound("pattern", item.pattern_id)
            held = list(pattern.steps)

        request = ReviewDateUpdate(
            request_scheduled_date=request_scheduled_date,
            overdue_policy=overdue_policy,
            pattern_id=item.pattern_id,
            pattern_steps=held,
            learned_date=item.learned_date,
            initial_scheduled_date=review.initial_scheduled_date,
            step_number=review.step_number,
            category_id=item.category_id,
            box_id=item.box_id,
        )

        async def send() -> ItemResponse:
            return await self.service.update_review_date(item.item_id, review_date_id, request)

        def apply(response: ItemResponse) -> ItemResponse:
            return self.sync.apply_updated(self.sync.lookup(item.item_id) or item, response)

        logger.info(
            "reschedule_requested",
            item_id=item.item_id,
            review_date_id=review_date_id,
            location_key=resolve_location_key(item.box_id, item.category_id),
            policy=overdue_policy.value,
        )
        return await self.sync.run_mutation(item.item_id, send, apply)
