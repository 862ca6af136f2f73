from reviewbox.models.pattern import Pattern, PatternStep
from reviewbox.models.category import Category
from reviewbox.models.box import Box
from reviewbox.models.item import Item, ReviewDate

__all__ = [
    "Pattern",
    "PatternStep",
    "Category",
    "Box",
    "Item",
    "ReviewDate"
]
