from reviewbox.crud.pattern import (
    create_pattern,
    get_pattern,
    get_patterns,
    update_pattern,
    delete_pattern
)
from reviewbox.crud.category import (
    create_category,
    get_category,
    get_categories,
    update_category,
    delete_category
)
from reviewbox.crud.box import create_box, get_box, get_boxes, update_box, delete_box
from reviewbox.crud.item import (
    create_item,
    get_item,
    require_item,
    update_item,
    delete_item,
    mark_item_finished,
    mark_item_unfinished,
    get_items_by_box,
    get_unclassified_items,
    get_unclassified_items_by_category
)
from reviewbox.crud.review_date import (
    complete_review_date,
    incomplete_review_date,
    update_review_date,
    get_daily_review_dates
)
from reviewbox.crud.summary import get_summary

__all__ = [
    "create_pattern",
    "get_pattern",
    "get_patterns",
    "update_pattern",
    "delete_pattern",
    "create_category",
    "get_category",
    "get_categories",
    "update_category",
    "delete_category",
    "create_box",
    "get_box",
    "get_boxes",
    "update_box",
    "delete_box",
    "create_item",
    "get_item",
    "require_item",
    "update_item",
    "delete_item",
    "mark_item_finished",
    "mark_item_unfinished",
    "get_items_by_box",
    "get_unclassified_items",
    "get_unclassified_items_by_category",
    "complete_review_date",
    "incomplete_review_date",
    "update_review_date",
    "get_daily_review_dates",
    "get_summary",
]
