"""Map SQL rows to the camelCase documents the store contract speaks."""
from __future__ import annotations

from typing import Any, ClassVar, Dict

from services.errors import StoreError


class DocumentMixin:
    # document key -> column attribute
    DOCUMENT_FIELDS: ClassVar[Dict[str, str]] = {}

    def to_document(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in self.DOCUMENT_FIELDS.items()}

    def apply_fields(self, fields: Dict[str, Any]) -> None:
        for key, value in fields.items():
            attr = self.DOCUMENT_FIELDS.get(key)
            if attr is None:
                raise StoreError(f"Unknown field {key!r} for {self.__tablename__}")
            setattr(self, attr, value)
