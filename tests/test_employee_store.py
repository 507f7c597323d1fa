"""
Test record store (SQLite su file temporaneo).
"""
import asyncio
import hashlib
import math
from dataclasses import replace
from datetime import date

import pytest

from core.database import create_engine_for
from core.employee_store import EmployeeStore, compute_hash, is_valid_column_name
from ingest.types import ZERO_DATE, EmployeeRecord


class TestComputeHash:
    """Test per compute_hash."""

    def test_known_digest(self):
        record = EmployeeRecord("A", "a@x.com", "010", date(2020, 1, 1))
        expected = hashlib.sha256("A|a@x.com|010|2020-01-01".encode("utf-8")).hexdigest()
        assert compute_hash(record) == expected

    def test_extras_do_not_affect_hash(self):
        base = EmployeeRecord("A", "a@x.com", "010", date(2020, 1, 1))
        assert compute_hash(base) == compute_hash(replace(base, extra={"dept": "eng"}))

    def test_any_field_changes_hash(self, make_record):
        base = make_record(1)
        variants = [
            replace(base, name="Other"),
            replace(base, email="other@example.com"),
            replace(base, phone="010-9999-9999"),
            replace(base, joined=date(2020, 1, 2)),
            replace(base, joined=ZERO_DATE),
        ]
        hashes = {compute_hash(base)} | {compute_hash(v) for v in variants}
        assert len(hashes) == len(variants) + 1


class TestColumnNames:
    """Test per is_valid_column_name."""

    @pytest.mark.parametrize("name", ["dept", "Dept", "_private", "team_2", "a" * 128])
    def test_safe_names(self, name):
        assert is_valid_column_name(name)

    @pytest.mark.parametrize("name", [
        "drop;table",
        "x'y",
        "a)b",
        "1abc",
        "with space",
        "dash-name",
        "a" * 129,
        "tab\tname",
        "",
        "   ",
        None,
        "name",
        "EMAIL",
        "tel",
        "phone",
        "joined",
        "hash",
        "rowid",
        "dept\n",
        "부서",
    ])
    def test_unsafe_names(self, name):
        assert not is_valid_column_name(name)


class TestInsertBatch:
    """Test per insert_batch."""

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, store, make_record):
        records = [make_record(i) for i in range(3)]

        first = await store.insert_batch(records)
        second = await store.insert_batch(records)

        assert not first.is_error
        assert len(first.value) == 3
        assert not second.is_error
        assert second.value == []
        assert (await store.count()).value == 3

    @pytest.mark.asyncio
    async def test_duplicates_within_batch(self, store, make_record):
        outcome = await store.insert_batch([make_record(1), make_record(1), make_record(2)])
        assert [r.name for r in outcome.value] == ["Employee 001", "Employee 002"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, store):
        outcome = await store.insert_batch([])
        assert not outcome.is_error
        assert outcome.value == []

    @pytest.mark.asyncio
    async def test_extra_columns_created(self, store, make_record):
        await store.insert_batch([make_record(1, extra={"dept": "eng", "office": "Seoul"})])
        await store.insert_batch([make_record(2, extra={"dept": "ops"})])

        assert (await store.known_columns()).value == ["dept", "office"]
        items, _ = (await store.read_page(1, 10)).value
        assert items[0].extra == {"dept": "eng", "office": "Seoul"}
        assert items[1].extra == {"dept": "ops"}

    @pytest.mark.asyncio
    async def test_column_names_case_insensitive(self, store, make_record):
        """La prima grafia crea la colonna, le successive la riusano."""
        await store.insert_batch([make_record(1, extra={"Dept": "eng"})])
        await store.insert_batch([make_record(2, extra={"DEPT": "ops"})])

        assert (await store.known_columns()).value == ["Dept"]
        items, _ = (await store.read_page(1, 10)).value
        assert items[1].extra == {"Dept": "ops"}

    @pytest.mark.asyncio
    async def test_unsafe_keys_never_become_columns(self, store, make_record):
        hostile = {
            "dept": "eng",
            "x); DROP TABLE employees; --": "1",
            "o'brien": "2",
            "a)b": "3",
            "9lives": "4",
        }
        outcome = await store.insert_batch([make_record(1, extra=hostile)])

        assert not outcome.is_error
        assert outcome.value[0].extra == {"dept": "eng"}
        assert (await store.known_columns()).value == ["dept"]

        # Insert e letture successive funzionano
        later = await store.insert_batch([make_record(2, extra={"o'brien": "5"})])
        assert len(later.value) == 1
        assert (await store.read_page(1, 10)).value[1] == 2

    @pytest.mark.asyncio
    async def test_concurrent_batches_with_new_columns(self, store, make_record):
        """Batch concorrenti con colonne nuove e record sovrapposti."""
        batches = [
            [make_record(i, extra={"team": f"t{worker}", f"col_{worker}": "x"}) for i in range(worker, worker + 10)]
            for worker in range(5)
        ]

        outcomes = await asyncio.gather(*(store.insert_batch(batch) for batch in batches))

        assert all(not o.is_error for o in outcomes)
        assert sum(len(o.value) for o in outcomes) == 14
        assert (await store.count()).value == 14
        assert (await store.known_columns()).value == ["col_0", "col_1", "col_2", "col_3", "col_4", "team"]


class TestReads:
    """Test per read_page e read_by_name."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total,page_size", [(23, 5), (20, 10), (1, 100), (7, 1)])
    async def test_pages_cover_all_rows_once(self, store, make_record, total, page_size):
        await store.insert_batch([make_record(i) for i in range(total)])

        pages = math.ceil(total / page_size)
        seen = []
        for page in range(1, pages + 1):
            items, count = (await store.read_page(page, page_size)).value
            assert count == total
            seen.extend(item.name for item in items)

        assert seen == [make_record(i).name for i in range(total)]
        beyond, _ = (await store.read_page(pages + 1, page_size)).value
        assert beyond == []

    @pytest.mark.asyncio
    async def test_read_page_empty_store(self, store):
        items, total = (await store.read_page(1, 10)).value
        assert items == []
        assert total == 0

    @pytest.mark.asyncio
    async def test_round_trip_fields(self, store):
        record = EmployeeRecord("김철수", "charles@x.com", "01075312468", date(2018, 3, 7), {"dept": "eng"})
        await store.insert_batch([record])

        found = (await store.read_by_name("김철수")).value
        assert found == record

    @pytest.mark.asyncio
    async def test_read_by_name_case_insensitive_first_match(self, store, make_record):
        await store.insert_batch([
            make_record(1, name="Alice", email="first@x.com"),
            make_record(2, name="ALICE", email="second@x.com"),
        ])

        found = (await store.read_by_name("alice")).value
        assert found.email == "first@x.com"

    @pytest.mark.asyncio
    async def test_read_by_name_missing(self, store):
        outcome = await store.read_by_name("nobody")
        assert not outcome.is_error
        assert outcome.value is None


class TestUpdateByHash:
    """Test per update_by_hash."""

    @pytest.mark.asyncio
    async def test_update_preserves_extras(self, store, make_record):
        original = make_record(1, extra={"dept": "eng"})
        await store.insert_batch([original])

        updated = replace(original, email="new@example.com", extra={})
        outcome = await store.update_by_hash(compute_hash(original), updated)

        assert not outcome.is_error
        found = (await store.read_by_name(original.name)).value
        assert found.email == "new@example.com"
        assert found.extra == {"dept": "eng"}

        # Il nuovo hash è la nuova identità: reinserire l'originale crea una riga
        assert len((await store.insert_batch([original])).value) == 1

    @pytest.mark.asyncio
    async def test_update_to_existing_identity_conflicts(self, store, make_record):
        first, second = make_record(1), make_record(2)
        await store.insert_batch([first, second])

        outcome = await store.update_by_hash(compute_hash(first), replace(second))

        assert outcome.is_error
        assert outcome.first_error.code == "Employee.DuplicateAfterUpdate"
        assert outcome.first_error.kind == "conflict"

    @pytest.mark.asyncio
    async def test_update_unknown_hash(self, store, make_record):
        outcome = await store.update_by_hash("0" * 64, make_record(1))
        assert outcome.first_error.code == "Employee.NotFound"

    @pytest.mark.asyncio
    async def test_update_same_identity_is_noop_success(self, store, make_record):
        record = make_record(1)
        await store.insert_batch([record])
        outcome = await store.update_by_hash(compute_hash(record), record)
        assert not outcome.is_error


class TestStorageFailures:
    """Errori di storage convertiti in StorageFailed."""

    @pytest.mark.asyncio
    async def test_missing_table_is_storage_failed(self, db_url):
        engine = create_engine_for(db_url)
        uninitialized = EmployeeStore(engine)
        try:
            outcome = await uninitialized.read_page(1, 10)
            assert outcome.is_error
            assert outcome.first_error.code == "Employee.StorageFailed"
            assert outcome.first_error.kind == "unexpected"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_initialize_idempotent(self, store):
        await store.initialize()
        assert store.ready
        assert (await store.count()).value == 0

    @pytest.mark.asyncio
    async def test_unencodable_name_is_storage_failed(self, store, make_record):
        """Un surrogato isolato nel nome non solleva eccezioni fuori dallo store."""
        record = make_record(1, name="A\ud800")
        assert len(compute_hash(record)) == 64

        outcome = await store.insert_batch([record, make_record(2)])

        assert outcome.is_error
        assert outcome.first_error.code == "Employee.StorageFailed"
        assert (await store.count()).value == 0

    @pytest.mark.asyncio
    async def test_unencodable_extra_is_storage_failed(self, store, make_record):
        outcome = await store.insert_batch([make_record(1, extra={"dept": "\ud800"})])

        assert outcome.is_error
        assert outcome.first_error.code == "Employee.StorageFailed"
        assert (await store.count()).value == 0
