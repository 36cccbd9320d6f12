"""
Data models for tabs and notes.

Uses Pydantic for validation and serialization. The record models double as
row decoders: they are built from ORM rows with ``from_attributes`` and a
missing or mistyped column fails validation instead of falling back to a
default.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Tab(BaseModel):
    """Complete tab with all fields"""
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class Note(BaseModel):
    """Complete note with all fields"""
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: int
    title: str
    content: str
    tab_id: Optional[int]
    parent_id: Optional[int]
    order_id: Optional[int]
    note_type: str
    created_at: datetime
    updated_at: datetime


class TabCreate(BaseModel):
    """Payload for creating a tab"""
    name: str = Field(..., min_length=1, max_length=200)


class TabUpdate(BaseModel):
    """Payload for renaming a tab"""
    name: str = Field(..., min_length=1, max_length=200)


class NoteCreate(BaseModel):
    """Payload for creating a note"""
    title: str = Field(..., max_length=500)
    content: str = ""
    tab_id: Optional[int] = None
    parent_id: Optional[int] = None
    note_type: str = Field("note", min_length=1, max_length=50)


class NoteUpdate(BaseModel):
    """Payload for updating a note's title and content"""
    title: str = Field(..., max_length=500)
    content: str


class ReorderRequest(BaseModel):
    """Desired order of note ids within one scope"""
    note_ids: List[int] = Field(default_factory=list)

    @field_validator("note_ids")
    @classmethod
    def _no_duplicates(cls, value: List[int]) -> List[int]:
        if len(set(value)) != len(value):
            raise ValueError("note_ids must not contain duplicates")
        return value
