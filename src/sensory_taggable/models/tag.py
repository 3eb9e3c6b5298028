# Файл: sensory_taggable/models/tag.py

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class TagInDB(BaseModel):
    id: int
    name: str
    item_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# Снимок элемента на момент события жизненного цикла
class ItemSnapshot(BaseModel):
    item_id: int
    attributes: Dict[str, Any] = Field(default_factory=dict)
    # Непрозрачное значение для хука контекста (например, id арендатора)
    context: Any = None

    def is_marked_deleted(self, column: Optional[str]) -> bool:
        return column is not None and self.attributes.get(column) is not None


class TagQueryPage(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[Any]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))
