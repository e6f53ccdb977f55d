import pytest
from typing import Any, Dict, List, Mapping, Optional
from passport_auth.utils.config import Settings


class FakeUser(dict):
    '''In-memory user record with the save()/to_dict() contract.'''

    def __init__(self, store: "FakeUsers", data: Optional[Mapping[str, Any]] = None):
        super().__init__(data or {})
        self._store = store
        self.save_count = 0

    async def save(self):
        self.save_count += 1
        if self not in self._store.records:
            self.setdefault("id", str(len(self._store.records) + 1))
            self._store.records.append(self)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return dict(self)

    def __eq__(self, other):
        return self is other

    __hash__ = object.__hash__


class FakeUsers:
    def __init__(self, records: Optional[List[Mapping[str, Any]]] = None):
        self.records: List[FakeUser] = []
        self.queries: List[Dict[str, Any]] = []
        for data in records or []:
            self.records.append(FakeUser(self, data))

    async def find_one(self, query: Mapping[str, Any]) -> Optional[FakeUser]:
        self.queries.append(dict(query))
        for record in self.records:
            if all(record.get(k) == v for k, v in query.items()):
                return record
        return None

    def new(self, data: Mapping[str, Any]) -> FakeUser:
        return FakeUser(self, data)


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def env_settings():
    # Ignores any developer .env so defaults are predictable
    return Settings(_env_file=None)
