"""In-memory cache of resolved endpoint statuses."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from relay_status.status.models import StatusRecord


class StatusCache:
    """Endpoint name -> last resolved :class:`StatusRecord`.

    Mutations never edit the published mapping in place: ``replace_all`` and
    ``set`` build a new dict and swap the reference, so a reader holding a
    snapshot from ``get_all`` keeps seeing one consistent generation.
    """

    def __init__(self) -> None:
        self._records: dict[str, StatusRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def get(self, name: str) -> StatusRecord | None:
        return self._records.get(name)

    def get_all(self) -> Mapping[str, StatusRecord]:
        """Read-only view of the current generation."""
        return MappingProxyType(self._records)

    def replace_all(self, records: Mapping[str, StatusRecord]) -> None:
        self._records = dict(records)

    def set(self, name: str, record: StatusRecord) -> None:
        updated = dict(self._records)
        updated[name] = record
        self._records = updated
