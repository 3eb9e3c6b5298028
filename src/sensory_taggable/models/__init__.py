from .tag import TagInDB, ItemSnapshot, TagQueryPage

__all__ = [
    "TagInDB", "ItemSnapshot", "TagQueryPage",
]
