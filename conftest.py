from datetime import datetime, timedelta, timezone

import pytest

from circulation.library import Library
from circulation.services.store import SQLiteDataStore


class FakeClock:
    """Testlerde 'şimdi'yi sabitlemek ve ileri sarmak için."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_path, request):
    # Her test için benzersiz bir veritabanı dosyası oluştur
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    return SQLiteDataStore(db_file=db_file)


@pytest.fixture
def lib(store, clock):
    lib = Library(store=store, clock=clock)
    yield lib
    lib.close()


@pytest.fixture
def member(lib):
    return lib.add_member("Ada Lovelace", "ada@example.com", "+44 20 7946 0000")


@pytest.fixture
def book(lib):
    return lib.add_book("Ulysses", "James Joyce", "9780199535675", quantity=3)
