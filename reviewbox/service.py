"""
Item service: the request/response boundary between the client and the
authoritative store.

ItemService is the abstract contract. LocalItemService fulfils it in
process with the SQLAlchemy CRUD layer, running each call on a worker
thread with its own session.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reviewbox import crud
from reviewbox.errors import ReviewBoxError, TransportError
from reviewbox.schemas import (
    BoxCreate, BoxResponse, CategoryCreate, CategoryResponse, DailyReviewFilters,
    DailyReviewsResponse, ItemCreate, ItemResponse, ItemUnfinish, ItemUpdate,
    PatternCreate, PatternModel, ReviewDateToggle, ReviewDateUpdate, SummaryCounts
)

logger = structlog.get_logger(__name__)


class ItemService(ABC):
    """Operations the client consumes; every call may raise TransportError"""

    # --- items ---
    @abstractmethod
    async def create_item(self, draft: ItemCreate) -> ItemResponse: ...

    @abstractmethod
    async def update_item(self, item_id: int, patch: ItemUpdate) -> ItemResponse: ...

    @abstractmethod
    async def delete_item(self, item_id: int) -> None: ...

    @abstractmethod
    async def mark_item_finished(self, item_id: int) -> ItemResponse: ...

    @abstractmethod
    async def mark_item_unfinished(self, item_id: int, request: ItemUnfinish) -> ItemResponse: ...

    @abstractmethod
    async def complete_review_date(self, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> ItemResponse: ...

    @abstractmethod
    async def incomplete_review_date(self, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> ItemResponse: ...

    @abstractmethod
    async def update_review_date(self, item_id: int, review_date_id: int, request: ReviewDateUpdate) -> ItemResponse: ...

    # --- item queries ---
    @abstractmethod
    async def fetch_item(self, item_id: int) -> ItemResponse: ...

    @abstractmethod
    async def fetch_items_by_box(self, box_id: int) -> List[ItemResponse]: ...

    @abstractmethod
    async def fetch_unclassified_items(self) -> List[ItemResponse]: ...

    @abstractmethod
    async def fetch_unclassified_items_by_category(self, category_id: int) -> List[ItemResponse]: ...

    @abstractmethod
    async def fetch_finished_items(self, box_id: Optional[int] = None, category_id: Optional[int] = None) -> List[ItemResponse]: ...

    @abstractmethod
    async def fetch_todays_reviews(self, filters: Optional[DailyReviewFilters] = None) -> DailyReviewsResponse: ...

    @abstractmethod
    async def fetch_summary(self) -> SummaryCounts: ...

    # --- patterns, categories, boxes ---
    @abstractmethod
    async def fetch_patterns(self) -> List[PatternModel]: ...

    @abstractmethod
    async def create_pattern(self, pattern: PatternCreate) -> PatternModel: ...

    @abstractmethod
    async def update_pattern(self, pattern_id: int, pattern: PatternCreate) -> PatternModel: ...

    @abstractmethod
    async def delete_pattern(self, pattern_id: int) -> None: ...

    @abstractmethod
    async def fetch_categories(self) -> List[CategoryResponse]: ...

    @abstractmethod
    async def create_category(self, category: CategoryCreate) -> CategoryResponse: ...

    @abstractmethod
    async def delete_category(self, category_id: int) -> None: ...

    @abstractmethod
    async def fetch_boxes(self, category_id: int) -> List[BoxResponse]: ...

    @abstractmethod
    async def create_box(self, category_id: int, box: BoxCreate) -> BoxResponse: ...

    @abstractmethod
    async def update_box(self, box_id: int, box: BoxCreate) -> BoxResponse: ...

    @abstractmethod
    async def delete_box(self, box_id: int) -> None: ...


def _items(rows) -> List[ItemResponse]:
    return [ItemResponse.model_validate(row) for row in rows]


class LocalItemService(ItemService):
    """ItemService backed by the local database"""

    def __init__(self, session_factory: Callable[[], Session] = None, clock: Callable[[], date] = None):
        if session_factory is None:
            from reviewbox.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory
        self._clock = clock or date.today

    def today(self) -> date:
        return self._clock()

    def _run(self, operation: str, fn: Callable[[Session], object]):
        db = self._session_factory()
        try:
            return fn(db)
        except ReviewBoxError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("service_call_failed", operation=operation, error=str(exc))
            raise TransportError(f"{operation} failed: {exc}") from exc
        finally:
            db.close()

    async def _call(self, operation: str, fn: Callable[[Session], object]):
        logger.debug("service_call", operation=operation)
        return await asyncio.to_thread(self._run, operation, fn)

    # --- items ---
    async def create_item(self, draft: ItemCreate) -> ItemResponse:
        return await self._call(
            "create_item",
            lambda db: ItemResponse.model_validate(crud.create_item(db, draft, self.today())),
        )

    async def update_item(self, item_id: int, patch: ItemUpdate) -> ItemResponse:
        return await self._call(
            "update_item",
            lambda db: ItemResponse.model_validate(crud.update_item(db, item_id, patch, self.today())),
        )

    async def delete_item(self, item_id: int) -> None:
        await self._call("delete_item", lambda db: crud.delete_item(db, item_id))

    async def mark_item_finished(self, item_id: int) -> ItemResponse:
        return await self._call(
            "mark_item_finished",
            lambda db: ItemResponse.model_validate(crud.mark_item_finished(db, item_id)),
        )

    async def mark_item_unfinished(self, item_id: int, request: ItemUnfinish) -> ItemResponse:
        return await self._call(
            "mark_item_unfinished",
            lambda db: ItemResponse.model_validate(crud.mark_item_unfinished(db, item_id, request, self.today())),
        )

    async def complete_review_date(self, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> ItemResponse:
        return await self._call(
            "complete_review_date",
            lambda db: ItemResponse.model_validate(crud.complete_review_date(db, item_id, review_date_id, toggle)),
        )

    async def incomplete_review_date(self, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> ItemResponse:
        return await self._call(
            "incomplete_review_date",
            lambda db: ItemResponse.model_validate(crud.incomplete_review_date(db, item_id, review_date_id, toggle)),
        )

    async def update_review_date(self, item_id: int, review_date_id: int, request: ReviewDateUpdate) -> ItemResponse:
        return await self._call(
            "update_review_date",
            lambda db: ItemResponse.model_validate(
                crud.update_review_date(db, item_id, review_date_id, request, self.today())
            ),
        )

    # --- item queries ---
    async def fetch_item(self, item_id: int) -> ItemResponse:
        return await self._call(
            "fetch_item",
            lambda db: ItemResponse.model_validate(crud.require_item(db, item_id)),
        )

    async def fetch_items_by_box(self, box_id: int) -> List[ItemResponse]:
        return await self._call("fetch_items_by_box", lambda db: _items(crud.get_items_by_box(db, box_id)))

    async def fetch_unclassified_items(self) -> List[ItemResponse]:
        return await self._call("fetch_unclassified_items", lambda db: _items(crud.get_unclassified_items(db)))

    async def fetch_unclassified_items_by_category(self, category_id: int) -> List[ItemResponse]:
        return await self._call(
            "fetch_unclassified_items_by_category",
            lambda db: _items(crud.get_unclassified_items_by_category(db, category_id)),
        )

    async def fetch_finished_items(self, box_id: Optional[int] = None, category_id: Optional[int] = None) -> List[ItemResponse]:
        def query(db: Session):
            if box_id is not None:
                return _items(crud.get_items_by_box(db, box_id, finished=True))
            if category_id is not None:
                return _items(crud.get_unclassified_items_by_category(db, category_id, finished=True))
            return _items(crud.get_unclassified_items(db, finished=True))

        return await self._call("fetch_finished_items", query)

    async def fetch_todays_reviews(self, filters: Optional[DailyReviewFilters] = None) -> DailyReviewsResponse:
        filters = filters or DailyReviewFilters()
        return await self._call(
            "fetch_todays_reviews",
            lambda db: crud.get_daily_review_dates(db, self.today(), filters.category_id, filters.box_id),
        )

    async def fetch_summary(self) -> SummaryCounts:
        return await self._call("fetch_summary", lambda db: crud.get_summary(db, self.today()))

    # --- patterns, categories, boxes ---
    async def fetch_patterns(self) -> List[PatternModel]:
        return await self._call(
            "fetch_patterns",
            lambda db: [PatternModel.model_validate(p) for p in crud.get_patterns(db)],
        )

    async def create_pattern(self, pattern: PatternCreate) -> PatternModel:
        return await self._call(
            "create_pattern",
            lambda db: PatternModel.model_validate(crud.create_pattern(db, pattern)),
        )

    async def update_pattern(self, pattern_id: int, pattern: PatternCreate) -> PatternModel:
        return await self._call(
            "update_pattern",
            lambda db: PatternModel.model_validate(crud.update_pattern(db, pattern_id, pattern)),
        )

    async def delete_pattern(self, pattern_id: int) -> None:
        await self._call("delete_pattern", lambda db: crud.delete_pattern(db, pattern_id))

    async def fetch_categories(self) -> List[CategoryResponse]:
        return await self._call(
            "fetch_categories",
            lambda db: [CategoryResponse.model_validate(c) for c in crud.get_categories(db)],
        )

    async def create_category(self, category: CategoryCreate) -> CategoryResponse:
        return await self._call(
            "create_category",
            lambda db: CategoryResponse.model_validate(crud.create_category(db, category)),
        )

    async def delete_category(self, category_id: int) -> None:
        await self._call("delete_category", lambda db: crud.delete_category(db, category_id))

    async def fetch_boxes(self, category_id: int) -> List[BoxResponse]:
        return await self._call(
            "fetch_boxes",
            lambda db: [BoxResponse.model_validate(b) for b in crud.get_boxes(db, category_id)],
        )

    async def create_box(self, category_id: int, box: BoxCreate) -> BoxResponse:
        return await self._call(
            "create_box",
            lambda db: BoxResponse.model_validate(crud.create_box(db, category_id, box)),
        )

    async def update_box(self, box_id: int, box: BoxCreate) -> BoxResponse:
        return await self._call(
            "update_box",
            lambda db: BoxResponse.model_validate(crud.update_box(db, box_id, box, self.today())),
        )

    async def delete_box(self, box_id: int) -> None:
        await self._call("delete_box", lambda db: crud.delete_box(db, box_id))
