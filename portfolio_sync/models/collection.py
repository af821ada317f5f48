"""Ordered, name-unique project collection owned by one sync run."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from portfolio_sync.models.project import ProjectRecord


def sort_key(record: ProjectRecord) -> tuple:
    """Year descending, then last update descending."""
    return (-record.year, -record.updated_at.timestamp())


class ProjectCollection:
    """In-memory portfolio collection.

    The orchestrator owns one instance per run; every mutation goes through
    these methods so `name` stays unique.
    """

    def __init__(self, records: Iterable[ProjectRecord] = ()) -> None:
        self._records: list[ProjectRecord] = []
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ProjectRecord]:
        return iter(list(self._records))

    def __contains__(self, name: object) -> bool:
        return self._index(name) is not None

    def get(self, name: str) -> Optional[ProjectRecord]:
        index = self._index(name)
        return None if index is None else self._records[index]

    def add(self, record: ProjectRecord) -> None:
        """Append, or replace the existing record with the same name in place."""
        index = self._index(record.name)
        if index is None:
            self._records.append(record)
        else:
            self._records[index] = record

    def prepend(self, record: ProjectRecord) -> None:
        self.remove(record.name)
        self._records.insert(0, record)

    def move_to_front(self, name: str) -> bool:
        index = self._index(name)
        if index is None:
            return False
        self._records.insert(0, self._records.pop(index))
        return True

    def remove(self, name: str) -> Optional[ProjectRecord]:
        index = self._index(name)
        if index is None:
            return None
        return self._records.pop(index)

    def sort(self) -> None:
        # list.sort is stable: records moved to the front win ties.
        self._records.sort(key=sort_key)

    def by_year(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self._records:
            counts[record.date] = counts.get(record.date, 0) + 1
        return dict(sorted(counts.items(), key=lambda item: item[0], reverse=True))

    def to_list(self) -> list[dict]:
        return [record.to_dict() for record in self._records]

    def _index(self, name: object) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.name == name:
                return index
        return None
