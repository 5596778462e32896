"""Shared fixtures for LedgerSync tests."""

import pytest

from ledgersync.store.sqlite import SqliteStore
from ledgersync.tests.helpers import FakeStore, make_xlsx


@pytest.fixture
def xlsx_bytes():
    """Factory for in-memory XLSX files."""
    return make_xlsx


@pytest.fixture
def fake_store():
    return FakeStore(["Lauri OP", "Lauri NordeaFI", "Lauri Norwegian"])


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteStore(tmp_path / "ledger.db")


OP_CSV = (
    "Kirjauspäivä;Arvopäivä;Määrä EUROA;Laji;Selitys;Saaja/Maksaja;Saajan tilinumero;"
    "Saajan pankin BIC;Viite;Viesti;Arkistointitunnus\n"
    '"2019-01-02";"2019-01-03";-201,10;"106";"TILISIIRTO";"ACCOUNT HOLDER";"FI00 1234";"OKOYFIHH";"";'
    '"2018xxxx/xxxx";"20190103/xxx"\n'
    '"2019-01-10";"2019-01-10";502,93;"710";"PALKKA";"EMPLOYER";"";"";"";"Palkka";"20190110/yyy"\n'
    '"2019-01-15";"2019-01-15";-5,65;"103";"PALVELUMAKSU";"OSUUSPANKKI";"";"";"";"";"20190115/zzz"\n'
).encode("utf-8")


@pytest.fixture
def op_csv_bytes():
    return OP_CSV
