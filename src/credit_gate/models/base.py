from __future__ import annotations

from typing import Any, ClassVar, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

TModel = TypeVar("TModel", bound="DBSerializableModel")


class DBSerializableModel(BaseModel):
    """
    Base Pydantic model that knows how to serialize itself for persistence
    and how to rebuild itself from a stored document.
    """

    # Logical collection / table name; subclasses should override
    collection_name: ClassVar[str]

    def serialize_for_db(self) -> Dict[str, Any]:
        """
        Convert to a dict suitable for DB persistence.

        This is the single place to control how models are stored;
        DB adapters can still post-process this if needed.
        """
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_db(cls: Type[TModel], doc: Optional[Mapping[str, Any]]) -> Optional[TModel]:
        if doc is None:
            return None
        data = dict(doc)
        if "_id" in data:
            data.setdefault("id", str(data["_id"]))
            data.pop("_id")
        return cls.model_validate(data)
