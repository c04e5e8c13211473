"""Segment model, stored inside a project's segment list."""

import uuid
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


class Segment(BaseModel):
    """A named time range on the project's media."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    start: float = Field(ge=0)
    end: Optional[float] = None  # None means "to the end of the media"
    selected: bool = True
    tags: Dict[str, str] = Field(default_factory=dict)
    color: Optional[int] = None

    @model_validator(mode="after")
    def check_range(self) -> "Segment":
        if self.end is not None and self.end <= self.start:
            raise ValueError("segment end must be greater than start")
        return self

    def effective_end(self, default_length: float) -> float:
        return self.end if self.end is not None else self.start + default_length

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start": self.start,
            "end": self.end,
            "selected": self.selected,
            "tags": dict(self.tags),
            "color": self.color,
        }
