import asyncio
from typing import Dict, List, Optional

import pytest

from reviewbox.client import ReviewClient
from reviewbox.errors import IncompatiblePattern, NotFound, OutOfRangeDate, TransportError, ValidationError
from reviewbox.schedule import ScheduleGenerator
from reviewbox.schemas import (
    BoxCreate, BoxResponse, CategoryCreate, CategoryResponse, DailyReviewFilters, DailyReviewsResponse,
    ItemCreate, ItemResponse, ItemUnfinish, ItemUpdate, OverduePolicy, PatternCreate, PatternModel,
    ReviewDateToggle, ReviewDateUpdate, SummaryCounts
)
from reviewbox.service import ItemService

from tests.helpers import TODAY, days_ago, pattern_model

P_137 = pattern_model(1, 1, 3, 7)
P_138 = pattern_model(2, 1, 3, 8)
P_137_COPY = pattern_model(3, 1, 3, 7)


class FakeItemService(ItemService):
    """In-memory service that records every request"""

    def __init__(self):
        self.calls: List[str] = []
        self.fail_next: Optional[Exception] = None
        self.patterns = {p.id: p for p in (P_137, P_138, P_137_COPY)}
        self.categories = {10: CategoryResponse(id=10, name="English")}
        self.boxes = {
            5: BoxResponse(id=5, category_id=10, name="A", pattern_id=P_137.id),
            6: BoxResponse(id=6, category_id=10, name="B", pattern_id=P_138.id),
            7: BoxResponse(id=7, category_id=10, name="C", pattern_id=P_137_COPY.id),
        }
        self.items: Dict[int, ItemResponse] = {}
        self.partial_updates = False
        self.last_request = None

    def add(self, item: ItemResponse) -> ItemResponse:
        self.items[item.item_id] = item
        return item

    async def _record(self, name: str):
        self.calls.append(name)
        await asyncio.sleep(0)
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    # --- items ---
    async def create_item(self, draft: ItemCreate) -> ItemResponse:
        await self._record("create_item")
        item_id = max(self.items, default=0) + 1
        box = self.boxes.get(draft.box_id)
        pattern_id = box.pattern_id if box else draft.pattern_id
        schedule = ScheduleGenerator.generate(self.patterns[pattern_id], draft.learned_date) if pattern_id else []
        return self.add(ItemResponse(
            item_id=item_id,
            box_id=draft.box_id,
            category_id=box.category_id if box else draft.category_id,
            pattern_id=pattern_id,
            name=draft.name,
            learned_date=draft.learned_date,
            review_dates=schedule,
        ))

    async def update_item(self, item_id: int, patch: ItemUpdate) -> ItemResponse:
        await self._record("update_item")
        changes = {name: getattr(patch, name) for name in patch.model_fields_set}
        changes.pop("overdue_policy", None)
        box = self.boxes.get(changes.get("box_id"))
        if box is not None:
            changes["pattern_id"] = box.pattern_id
        self.items[item_id] = self.items[item_id].model_copy(update=changes)
        if self.partial_updates:
            return ItemResponse(item_id=item_id, **changes)
        return self.items[item_id]

    async def delete_item(self, item_id: int) -> None:
        await self._record("delete_item")
        del self.items[item_id]

    async def mark_item_finished(self, item_id: int) -> ItemResponse:
        await self._record("mark_item_finished")
        self.items[item_id] = self.items[item_id].model_copy(update={"is_finished": True, "review_dates": []})
        return self.items[item_id]

    async def mark_item_unfinished(self, item_id: int, request: ItemUnfinish) -> ItemResponse:
        await self._record("mark_item_unfinished")
        self.items[item_id] = self.items[item_id].model_copy(update={
            "is_finished": False,
            "box_id": request.box_id,
            "category_id": request.category_id,
            "pattern_id": request.pattern_id,
            "learned_date": request.learned_date,
            "review_dates": ScheduleGenerator.generate(self.patterns[request.pattern_id], request.learned_date),
        })
        return self.items[item_id]

    async def _set_completed(self, item_id, review_date_id, completed):
        item = self.items[item_id]
        self.items[item_id] = item.model_copy(update={"review_dates": [
            rd.model_copy(update={"is_completed": completed}) if rd.review_date_id == review_date_id else rd
            for rd in item.review_dates
        ]})
        return self.items[item_id]

    async def complete_review_date(self, item_id, review_date_id, toggle: ReviewDateToggle) -> ItemResponse:
        await self._record("complete_review_date")
        return await self._set_completed(item_id, review_date_id, True)

    async def incomplete_review_date(self, item_id, review_date_id, toggle: ReviewDateToggle) -> ItemResponse:
        await self._record("incomplete_review_date")
        return await self._set_completed(item_id, review_date_id, False)

    async def update_review_date(self, item_id, review_date_id, request: ReviewDateUpdate) -> ItemResponse:
        await self._record("update_review_date")
        self.last_request = request
        item = self.items[item_id]
        self.items[item_id] = item.model_copy(update={"review_dates": [
            rd.model_copy(update={"scheduled_date": request.request_scheduled_date})
            if rd.review_date_id == review_date_id else rd
            for rd in item.review_dates
        ]})
        return self.items[item_id]

    # --- item queries ---
    async def fetch_item(self, item_id: int) -> ItemResponse:
        await self._record("fetch_item")
        if item_id not in self.items:
            raise NotFound("item", item_id)
        return self.items[item_id]

    def _active(self, predicate):
        return [i for i in self.items.values() if not i.is_finished and predicate(i)]

    async def fetch_items_by_box(self, box_id: int) -> List[ItemResponse]:
        await self._record("fetch_items_by_box")
        return self._active(lambda i: i.box_id == box_id)

    async def fetch_unclassified_items(self) -> List[ItemResponse]:
        await self._record("fetch_unclassified_items")
        return self._active(lambda i: i.box_id is None and i.category_id is None)

    async def fetch_unclassified_items_by_category(self, category_id: int) -> List[ItemResponse]:
        await self._record("fetch_unclassified_items_by_category")
        return self._active(lambda i: i.box_id is None and i.category_id == category_id)

    async def fetch_finished_items(self, box_id=None, category_id=None) -> List[ItemResponse]:
        await self._record("fetch_finished_items")
        return [i for i in self.items.values() if i.is_finished]

    async def fetch_todays_reviews(self, filters: Optional[DailyReviewFilters] = None) -> DailyReviewsResponse:
        await self._record("fetch_todays_reviews")
        return DailyReviewsResponse()

    async def fetch_summary(self) -> SummaryCounts:
        await self._record("fetch_summary")
        return SummaryCounts(unclassified_items=len(self._active(lambda i: i.box_id is None)))

    # --- patterns, categories, boxes ---
    async def fetch_patterns(self) -> List[PatternModel]:
        await self._record("fetch_patterns")
        return list(self.patterns.values())

    async def create_pattern(self, pattern: PatternCreate) -> PatternModel:
        raise NotImplementedError

    async def update_pattern(self, pattern_id: int, pattern: PatternCreate) -> PatternModel:
        raise NotImplementedError

    async def delete_pattern(self, pattern_id: int) -> None:
        raise NotImplementedError

    async def fetch_categories(self) -> List[CategoryResponse]:
        await self._record("fetch_categories")
        return list(self.categories.values())

    async def create_category(self, category: CategoryCreate) -> CategoryResponse:
        raise NotImplementedError

    async def delete_category(self, category_id: int) -> None:
        raise NotImplementedError

    async def fetch_boxes(self, category_id: int) -> List[BoxResponse]:
        await self._record("fetch_boxes")
        return [b for b in self.boxes.values() if b.category_id == category_id]

    async def create_box(self, category_id: int, box: BoxCreate) -> BoxResponse:
        raise NotImplementedError

    async def update_box(self, box_id: int, box: BoxCreate) -> BoxResponse:
        raise NotImplementedError

    async def delete_box(self, box_id: int) -> None:
        raise NotImplementedError


def seeded_item(service, item_id=1, box_id=5, completed_steps=(1,)):
    schedule = [
        rd.model_copy(update={"review_date_id": 10 * item_id + rd.step_number,
                              "is_completed": rd.step_number in completed_steps})
        for rd in ScheduleGenerator.generate(P_137, days_ago(30))
    ]
    return service.add(ItemResponse(
        item_id=item_id,
        box_id=box_id,
        category_id=10,
        pattern_id=P_137.id,
        name=f"item {item_id}",
        learned_date=days_ago(30),
        review_dates=schedule,
    ))


@pytest.fixture
def service():
    return FakeItemService()


@pytest.fixture
def client(service):
    return ReviewClient(service, clock=lambda: TODAY)


def ids(items):
    return [i.item_id for i in items or []]


def test_load_items_uses_query_cache(client, service):
    seeded_item(service)

    async def scenario():
        first = await client.load_items(5, 10)
        second = await client.load_items(5, 10)
        refreshed = await client.load_items(5, 10, refresh=True)
        return first, second, refreshed

    first, second, refreshed = asyncio.run(scenario())

    assert ids(first) == ids(second) == ids(refreshed) == [1]
    assert service.calls.count("fetch_items_by_box") == 2
    assert ids(client.sync.items_at(5, 10)) == [1]


def test_move_into_compatible_box_updates_both_views(client, service):
    item = seeded_item(service)

    async def scenario():
        await client.load_items(5, 10)
        await client.load_items(7, 10)
        return await client.move_item(item, box_id=7)

    moved = asyncio.run(scenario())

    assert moved.box_id == 7
    assert moved.pattern_id == P_137_COPY.id
    assert ids(client.sync.items_at(5, 10)) == []
    assert ids(client.sync.items_at(7, 10)) == [1]
    assert ids(client.sync.cached_query(5, 10)) == []
    assert ids(client.sync.cached_query(7, 10)) == [1]


def test_incompatible_move_sends_nothing(client, service):
    item = seeded_item(service)

    async def scenario():
        await client.load_items(5, 10)
        await client.move_item(item, box_id=6)

    with pytest.raises(IncompatiblePattern):
        asyncio.run(scenario())

    assert "update_item" not in service.calls
    assert ids(client.sync.items_at(5, 10)) == [1]
    assert service.items[1].box_id == 5


def test_move_without_completed_reviews_is_unrestricted(client, service):
    item = seeded_item(service, completed_steps=())

    moved = asyncio.run(client.move_item(item, box_id=6))

    assert moved.pattern_id == P_138.id
    assert "update_item" in service.calls


def test_move_to_unclassified(client, service):
    item = seeded_item(service)

    async def scenario():
        await client.load_items(5, 10)
        await client.load_items(None, 10)
        return await client.move_item(item, category_id=10)

    moved = asyncio.run(scenario())

    assert (moved.box_id, moved.category_id) == (None, 10)
    assert ids(client.sync.items_at(None, 10)) == [1]
    assert ids(client.sync.cached_query(None, 10)) == [1]
    assert ids(client.sync.items_at(5, 10)) == []


def test_transport_error_leaves_caches_unchanged(client, service):
    item = seeded_item(service)

    async def scenario():
        await client.load_items(5, 10)
        await client.load_items(7, 10)
        await client.load_boxes(10)
        await client.load_patterns()
        service.fail_next = TransportError("connection reset")
        await client.move_item(item, box_id=7)

    with pytest.raises(TransportError):
        asyncio.run(scenario())

    assert service.calls[-1] == "update_item"
    assert ids(client.sync.items_at(5, 10)) == [1]
    assert ids(client.sync.cached_query(7, 10)) == []


def test_partial_response_is_merged(client, service):
    item = seeded_item(service)
    service.partial_updates = True

    async def scenario():
        await client.load_items(5, 10)
        return await client.update_item(item, ItemUpdate(name="renamed"))

    updated = asyncio.run(scenario())

    assert updated.name == "renamed"
    assert updated.review_dates == item.review_dates
    assert client.sync.items_at(5, 10)[0].review_dates == item.review_dates


def test_create_inserts_into_loaded_location(client, service):
    async def scenario():
        await client.load_items(5, 10)
        return await client.create_item(ItemCreate(name="new", learned_date=TODAY, box_id=5))

    created = asyncio.run(scenario())

    assert created.pattern_id == P_137.id
    assert ids(client.sync.items_at(5, 10)) == [created.item_id]
    assert ids(client.sync.cached_query(5, 10)) == [created.item_id]


def test_local_validation_happens_before_any_request(client, service):
    with pytest.raises(ValidationError):
        asyncio.run(client.create_item(ItemCreate(name="  ", learned_date=TODAY)))
    with pytest.raises(ValidationError):
        asyncio.run(client.create_item(ItemCreate(name="x", learned_date=TODAY.replace(year=2030))))

    assert service.calls == []


def test_reschedule_out_of_range_sends_nothing(client, service):
    item = seeded_item(service)
    review = item.review_dates[2]

    with pytest.raises(OutOfRangeDate):
        asyncio.run(client.reschedule_review_date(item, review.review_date_id, TODAY))

    assert "update_review_date" not in service.calls


def test_reschedule_sends_pattern_steps(client, service):
    item = seeded_item(service)
    review = item.review_dates[2]
    requested = days_ago(2)

    updated = asyncio.run(
        client.reschedule_review_date(item, review.review_date_id, requested, OverduePolicy.PIN_TO_TODAY)
    )

    request = service.last_request
    assert request.step_number == 3
    assert request.initial_scheduled_date == review.initial_scheduled_date
    assert request.overdue_policy == OverduePolicy.PIN_TO_TODAY
    assert [s.interval_days for s in request.pattern_steps] == [1, 3, 7]
    assert updated.review_dates[2].scheduled_date == requested


def test_reschedule_sends_recorded_steps_after_pattern_edit(client, service):
    item = seeded_item(service)
    service.patterns[P_137.id] = pattern_model(P_137.id, 1, 3)
    review = item.review_dates[0]

    asyncio.run(client.reschedule_review_date(item, review.review_date_id, days_ago(25)))

    assert [s.interval_days for s in service.last_request.pattern_steps] == [1, 3, 7]
    assert "fetch_patterns" not in service.calls


def test_unknown_review_date(client, service):
    item = seeded_item(service)
    with pytest.raises(NotFound):
        asyncio.run(client.complete_review_date(item, 999))


def test_complete_and_incomplete(client, service):
    item = seeded_item(service, completed_steps=())
    review_id = item.review_dates[0].review_date_id

    async def scenario():
        await client.load_items(5, 10)
        done = await client.complete_review_date(item, review_id)
        undone = await client.incomplete_review_date(done, review_id)
        return done, undone

    done, undone = asyncio.run(scenario())

    assert done.review_dates[0].is_completed
    assert not undone.review_dates[0].is_completed
    assert not client.sync.items_at(5, 10)[0].review_dates[0].is_completed


def test_finish_delete_and_unfinish(client, service):
    first = seeded_item(service, item_id=1)
    second = seeded_item(service, item_id=2)

    async def scenario():
        await client.load_items(5, 10)
        await client.load_summary()
        await client.finish_item(first)
        assert client.sync.summary is None
        await client.delete_item(second)
        assert ids(client.sync.items_at(5, 10)) == []

        finished = await client.load_finished_items(5, 10)
        assert ids(finished) == [1]
        return await client.unfinish_item(
            finished[0], ItemUnfinish(pattern_id=P_137.id, learned_date=TODAY, box_id=5, category_id=10)
        )

    back = asyncio.run(scenario())

    assert not back.is_finished
    assert ids(client.sync.items_at(5, 10)) == [1]
    assert 2 not in service.items


def test_item_lookup_falls_back_to_service(client, service):
    seeded_item(service, box_id=None)

    found = asyncio.run(client.item(1))

    assert found.item_id == 1
    assert service.calls == ["fetch_item"]


def test_todays_reviews_cached_until_mutation(client, service):
    item = seeded_item(service)

    async def scenario():
        await client.load_todays_reviews()
        await client.load_todays_reviews()
        await client.update_item(item, ItemUpdate(name="renamed"))
        await client.load_todays_reviews()

    asyncio.run(scenario())

    assert service.calls.count("fetch_todays_reviews") == 2
