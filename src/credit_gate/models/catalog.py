from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import Field

from .base import DBSerializableModel


class Template(DBSerializableModel):
    collection_name: ClassVar[str] = "templates"

    id: Optional[str] = Field(default=None)
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    credit_cost: Optional[int] = None


class Language(DBSerializableModel):
    collection_name: ClassVar[str] = "languages"

    id: Optional[str] = Field(default=None)
    name: str
    code: Optional[str] = None
