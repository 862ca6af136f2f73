"""
Client-side item caches.

Two views of the same items are kept in step after every mutation:

- the location store maps a resolved location key (box id, or a synthetic
  unclassified key) to the active items at that location;
- the query cache maps the literal (box_id, category_id) pair a list was
  fetched with to that list, so repeated loads skip the round trip.

DualCacheSynchronizer owns both, merges partial server responses into what
is already known, and serializes mutations per item.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Set, Tuple, TypeVar, Union

import structlog

from reviewbox.errors import MutationInFlight
from reviewbox.schemas import UNCLASSIFIED, DailyReviewsResponse, ItemResponse, SummaryCounts

logger = structlog.get_logger(__name__)

Identifier = Union[int, str, None]
QueryKey = Tuple[Union[int, str], Union[int, str]]
T = TypeVar("T")
R = TypeVar("R")

# Explicit nulls for these fields are meaningful (e.g. moved to unclassified)
AUTHORITATIVE_NULL_FIELDS = ("category_id", "box_id", "pattern_id")


def _absent(value: Identifier) -> bool:
    return value is None or value == UNCLASSIFIED


def resolve_location_key(box_id: Identifier, category_id: Identifier) -> str:
    """Location store key: the box id, else unclassified-<category>, else unclassified"""
    if not _absent(box_id):
        return str(box_id)
    if not _absent(category_id):
        return f"{UNCLASSIFIED}-{category_id}"
    return UNCLASSIFIED


def query_key(box_id: Identifier, category_id: Identifier) -> QueryKey:
    """Query cache key for a (box_id, category_id) request"""
    return (
        UNCLASSIFIED if _absent(box_id) else box_id,
        UNCLASSIFIED if _absent(category_id) else category_id,
    )


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, dict)) and len(value) == 0)


def merge_item(previous: Optional[ItemResponse], server: ItemResponse) -> ItemResponse:
    """
    Merge a server response into the item the client already held.

    Field by field the server wins when it sent a non-empty value; otherwise
    the previous value is kept. Fields the response did not carry at all are
    always taken from the previous item. An explicit null for a location or
    pattern reference is taken from the server.
    """
    if previous is None or previous.item_id != server.item_id:
        return server

    sent = server.model_fields_set
    merged = {}
    for name in ItemResponse.model_fields:
        value = getattr(server, name)
        if name in sent and not _is_empty(value):
            merged[name] = value
        elif name in sent and value is None and name in AUTHORITATIVE_NULL_FIELDS:
            merged[name] = None
        else:
            merged[name] = getattr(previous, name)
    return ItemResponse(**merged)


def _without(items: List[ItemResponse], item_id: int) -> List[ItemResponse]:
    return [i for i in items if i.item_id != item_id]


def _upsert(items: List[ItemResponse], item: ItemResponse) -> List[ItemResponse]:
    if any(i.item_id == item.item_id for i in items):
        return [item if i.item_id == item.item_id else i for i in items]
    return items + [item]


class LocationStore:
    """Active items grouped by resolved location key"""

    def __init__(self):
        self._items: Dict[str, List[ItemResponse]] = {}

    def get(self, key: str) -> Optional[List[ItemResponse]]:
        items = self._items.get(key)
        return None if items is None else list(items)

    def set(self, key: str, items: List[ItemResponse]) -> None:
        # Finished items never live in the active store
        self._items[key] = [i for i in items if not i.is_finished]

    def mutate(self, key: str, fn: Callable[[List[ItemResponse]], List[ItemResponse]], create: bool = True) -> None:
        if key not in self._items and not create:
            return
        self.set(key, fn(list(self._items.get(key, []))))

    def keys(self) -> List[str]:
        return list(self._items)

    def find(self, item_id: int) -> Optional[Tuple[str, ItemResponse]]:
        for key, items in self._items.items():
            for item in items:
                if item.item_id == item_id:
                    return key, item
        return None

    def clear(self) -> None:
        self._items.clear()


class QueryCache:
    """Item lists keyed by the literal (box_id, category_id) they were fetched with"""

    def __init__(self):
        self._entries: Dict[QueryKey, List[ItemResponse]] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def get(self, key: QueryKey) -> Optional[List[ItemResponse]]:
        items = self._entries.get(key)
        return None if items is None else list(items)

    def set(self, key: QueryKey, items: List[ItemResponse]) -> None:
        self._entries[key] = list(items)

    def mutate(self, key: QueryKey, fn: Callable[[List[ItemResponse]], List[ItemResponse]]) -> bool:
        """Apply fn to an existing entry; missing entries stay missing"""
        if key not in self._entries:
            return False
        self._entries[key] = fn(list(self._entries[key]))
        return True

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def keys_for_location(self, location_key: str) -> Iterator[QueryKey]:
        for key in list(self._entries):
            if resolve_location_key(*key) == location_key:
                yield key

    def clear(self) -> None:
        self._entries.clear()


class MutationArena:
    """At most one in-flight mutation per item id; later ones queue behind it"""

    def __init__(self):
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._holders: Dict[Any, int] = {}

    def in_flight(self, item_id: Any) -> bool:
        lock = self._locks.get(item_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, item_id: Any, reject: bool = False):
        """Wait for the item's previous mutation, or raise MutationInFlight when reject is set"""
        lock = self._locks.setdefault(item_id, asyncio.Lock())
        if reject and lock.locked():
            raise MutationInFlight(item_id)

        self._holders[item_id] = self._holders.get(item_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[item_id] -= 1
            if self._holders[item_id] == 0:
                del self._holders[item_id]
                del self._locks[item_id]


class DualCacheSynchronizer:
    """Keeps the location store and the query cache consistent with the server"""

    def __init__(
        self,
        locations: Optional[LocationStore] = None,
        queries: Optional[QueryCache] = None,
        arena: Optional[MutationArena] = None,
    ):
        self.locations = locations or LocationStore()
        self.queries = queries or QueryCache()
        self.arena = arena or MutationArena()
        self.todays_reviews: Optional[DailyReviewsResponse] = None
        self.summary: Optional[SummaryCounts] = None
        self._pending: Set["asyncio.Future"] = set()  # mutations the caller may have stopped awaiting

    # --- reads -----------------------------------------------------------

    def items_at(self, box_id: Identifier, category_id: Identifier) -> Optional[List[ItemResponse]]:
        return self.locations.get(resolve_location_key(box_id, category_id))

    def cached_query(self, box_id: Identifier, category_id: Identifier) -> Optional[List[ItemResponse]]:
        return self.queries.get(query_key(box_id, category_id))

    def lookup(self, item_id: int) -> Optional[ItemResponse]:
        """Last known state of an item; not authoritative while a mutation is in flight"""
        found = self.locations.find(item_id)
        if found is not None:
            return found[1]
        for key in self.queries.keys():
            for item in self.queries.get(key) or []:
                if item.item_id == item_id:
                    return item
        return None

    def is_settled(self, item_id: int) -> bool:
        return not self.arena.in_flight(item_id)

    # --- authoritative fetches ------------------------------------------

    def apply_fetch(self, box_id: Identifier, category_id: Identifier, items: List[ItemResponse]) -> None:
        """A fetched list replaces both views for its location"""
        location = resolve_location_key(box_id, category_id)
        self.locations.set(location, items)
        self.queries.set(query_key(box_id, category_id), items)
        logger.debug("cache_fetch_applied", location_key=location, count=len(items))

    # --- mutation results -----------------------------------------------

    def invalidate_derived(self) -> None:
        """Today's reviews and summary counts are refetched after any mutation"""
        self.todays_reviews = None
        self.summary = None

    def apply_created(self, item: ItemResponse) -> ItemResponse:
        """Insert a newly created (or re-activated) item; the next fetch reconciles it"""
        location = resolve_location_key(item.box_id, item.category_id)
        if not item.is_finished:
            self.locations.mutate(location, lambda items: _upsert(items, item))
            for key in self.queries.keys_for_location(location):
                self.queries.mutate(key, lambda items: _upsert(items, item))
        self.invalidate_derived()
        logger.info("cache_item_created", item_id=item.item_id, location_key=location)
        return item

    def apply_removed(self, item: ItemResponse) -> None:
        """Drop an item that was deleted or finished from every view"""
        locations = {resolve_location_key(item.box_id, item.category_id)}
        found = self.locations.find(item.item_id)
        if found is not None:
            locations.add(found[0])

        for location in locations:
            self.locations.mutate(location, lambda items: _without(items, item.item_id), create=False)
            for key in self.queries.keys_for_location(location):
                self.queries.mutate(key, lambda items: _without(items, item.item_id))
        self.invalidate_derived()
        logger.info("cache_item_removed", item_id=item.item_id, location_keys=sorted(locations))

    def apply_updated(self, previous: Optional[ItemResponse], response: ItemResponse) -> ItemResponse:
        """
        Apply an update response to both views.

        The response is merged into the previous item first. When the item
        moved, it leaves every list for the old location and appears once in
        every list for the new one.
        """
        merged = merge_item(previous, response)
        if merged.is_finished:
            self.apply_removed(merged if previous is None else previous)
            return merged

        new_location = resolve_location_key(merged.box_id, merged.category_id)
        if previous is not None:
            old_location = resolve_location_key(previous.box_id, previous.category_id)
        else:
            found = self.locations.find(merged.item_id)
            old_location = found[0] if found is not None else new_location

        if old_location != new_location:
            self.locations.mutate(old_location, lambda items: _without(items, merged.item_id), create=False)
            for key in self.queries.keys_for_location(old_location):
                self.queries.mutate(key, lambda items: _without(items, merged.item_id))
            self.locations.mutate(new_location, lambda items: _upsert(items, merged))
        else:
            self.locations.mutate(new_location, lambda items: _upsert(items, merged), create=False)

        for key in self.queries.keys_for_location(new_location):
            self.queries.mutate(key, lambda items: _upsert(items, merged))

        self.invalidate_derived()
        logger.info(
            "cache_item_updated",
            item_id=merged.item_id,
            old_location_key=old_location,
            new_location_key=new_location,
        )
        return merged

    # --- serialized mutations -------------------------------------------

    async def run_mutation(
        self,
        item_id: Any,
        send: Callable[[], Awaitable[T]],
        apply: Callable[[T], R],
        reject: bool = False,
    ) -> R:
        """
        Run one mutation for an item under its arena slot.

        send performs the request; apply folds the response into the caches
        and runs only after success, so a failed request leaves both views
        untouched. The work is shielded: if the caller stops waiting, the
        mutation still finishes and the caches are still updated.
        """
        async def guarded() -> R:
            async with self.arena.hold(item_id, reject=reject):
                logger.debug("mutation_started", item_id=item_id)
                try:
                    response = await send()
                except Exception as exc:
                    logger.warning("mutation_failed", item_id=item_id, error=str(exc), error_type=type(exc).__name__)
                    raise
                result = apply(response)
                logger.debug("mutation_finished", item_id=item_id)
                return result

        task = asyncio.ensure_future(guarded())
        self._pending.add(task)
        task.add_done_callback(self._consume_result)
        return await asyncio.shield(task)

    def _consume_result(self, task: "asyncio.Future") -> None:
        self._pending.discard(task)
        # The caller may have stopped waiting; a failure is still logged once
        if not task.cancelled() and task.exception() is not None:
            logger.debug("mutation_task_failed", error=str(task.exception()))

    def clear(self) -> None:
        self.locations.clear()
        self.queries.clear()
        self.invalidate_derived()
