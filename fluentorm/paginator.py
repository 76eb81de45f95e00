from math import ceil
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Paginator(BaseModel):
    """One page of results plus the numbers needed to render page links."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[Any] = Field(default_factory=list)
    total: int = Field(ge=0)
    per_page: int = Field(ge=1)
    current_page: int = Field(ge=1)

    @property
    def last_page(self) -> int:
        return max(1, ceil(self.total / self.per_page))

    @property
    def has_more_pages(self) -> bool:
        return self.current_page < self.last_page

    def __len__(self):
        return len(self.items)

    def to_dict(self) -> dict:
        items = [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items]
        return {
            "data": items,
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
        }
