"""
Settings models: the recipient mapping, the sender address and history records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from pydantic import BaseModel, Field


def normalize_name(name: str) -> str:
    """Mapping key for a beneficiary name: collapsed whitespace, lower case."""
    return ' '.join(name.split()).lower()


@dataclass(frozen=True)
class RecipientMapping:
    """
    Read-only mapping from beneficiary name to delivery address.

    Keys are normalized on construction, so lookups are insensitive to case
    and stray whitespace in either the mapping sheet or the payers sheet.
    """

    _entries: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {
            normalize_name(name): address.strip()
            for name, address in self._entries.items()
            if normalize_name(name) and address and address.strip()
        }
        object.__setattr__(self, '_entries', MappingProxyType(normalized))

    @classmethod
    def from_dict(cls, entries: Mapping[str, str]) -> RecipientMapping:
        return cls(dict(entries))

    def resolve(self, name: str) -> str | None:
        """Return the mapped address, or None when the name has no address."""
        return self._entries.get(normalize_name(name))

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)


@dataclass(frozen=True)
class SenderSettings:
    """Snapshot of the settings a batch needs: who sends, and to whom."""

    mapping: RecipientMapping | None
    sender_email: str


class HistoryRecord(BaseModel):
    """A processed payers file, listed on the history page."""

    id: int | None = None
    file_name: str
    size_bytes: int = Field(default=0, description='Size of the stored file body')
    created_at: datetime = Field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the history listing."""
        return {
            'id': self.id,
            'file_name': self.file_name,
            'created_at': self.created_at.isoformat(),
            'size_bytes': self.size_bytes,
        }
