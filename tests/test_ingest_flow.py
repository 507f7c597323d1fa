"""
Test integration per pipeline completa (dispatch → parse → validazione → store).
"""
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.errors import Outcome, storage_failed
from ingest.pipeline import UpdateEmployeeRequest, process_content, update_employee

VALID_JSON = (
    '[{"name":"Hong Gildong","email":"hong@example.com","tel":"010-1234-5678",'
    '"joined":"2020-05-01","dept":"eng"}]'
)


def _accept_all(record):
    return True, []


class TestProcessContent:
    """Test per process_content."""

    @pytest.mark.asyncio
    async def test_json_flow_saves(self, store):
        outcome = await process_content(store, VALID_JSON, content_type="application/json")

        assert not outcome.is_error
        report = outcome.value
        assert report.parser == "json"
        assert report.rows_parsed == 1
        assert report.rows_valid == 1
        assert report.duplicates_skipped == 0
        assert report.inserted[0].extra == {"dept": "eng"}

    @pytest.mark.asyncio
    async def test_resubmission_counts_duplicates(self, store):
        await process_content(store, VALID_JSON)
        outcome = await process_content(store, VALID_JSON)

        assert not outcome.is_error
        assert outcome.value.inserted == []
        assert outcome.value.duplicates_skipped == 1

    @pytest.mark.asyncio
    async def test_sniffed_heuristic_csv(self, store):
        outcome = await process_content(store, "김철수, charles@x.com 01075312468, 2018.03.07")

        assert not outcome.is_error
        assert outcome.value.parser == "csv"
        record = outcome.value.inserted[0]
        assert record.name == "김철수"
        assert record.joined == date(2018, 3, 7)

    @pytest.mark.asyncio
    async def test_injected_validator(self, store):
        """Il collaboratore di validazione è sostituibile."""
        content = '[{"name":"A","email":"a@x.com","tel":"010","joined":"2020-01-01","dept":"eng"}]'

        first = await process_content(store, content, validator=_accept_all)
        second = await process_content(store, content, validator=_accept_all)

        assert len(first.value.inserted) == 1
        assert first.value.inserted[0].extra == {"dept": "eng"}
        assert second.value.inserted == []

    @pytest.mark.asyncio
    async def test_partial_rejection(self, store):
        content = "\n".join([
            "name,email,tel,joined",
            "Good,good@example.com,01012345678,2020-01-01",
            "BadPhone,bad@example.com,12345,2020-01-01",
        ])
        outcome = await process_content(store, content, content_type="text/csv")

        report = outcome.value
        assert report.rows_parsed == 2
        assert report.rows_valid == 1
        assert report.rows_rejected == 1
        assert [e.code for e in report.rejected] == ["Employee[1].phone"]

    @pytest.mark.asyncio
    async def test_all_rejected_returns_field_errors(self, store):
        content = "name,email,tel,joined\nA,a@x.com,010,2020-01-01"
        outcome = await process_content(store, content)

        assert outcome.is_error
        assert outcome.first_error.code == "Employee[0].phone"
        assert outcome.first_error.kind == "validation"
        assert (await store.count()).value == 0

    @pytest.mark.asyncio
    async def test_no_records_is_no_valid_data(self, store):
        outcome = await process_content(store, "just some words\nnothing useful", content_type="text/csv")
        assert outcome.first_error.code == "Employee.NoValidData"

    @pytest.mark.asyncio
    async def test_null_json_is_no_valid_data(self, store):
        outcome = await process_content(store, "null", content_type="application/json")
        assert outcome.first_error.code == "Employee.NoValidData"

    @pytest.mark.asyncio
    async def test_single_json_object_is_parse_failed(self, store):
        content = '{"name":"A","email":"a@example.com","tel":"010-1234-5678","joined":"2020-01-01"}'
        outcome = await process_content(store, content)

        assert outcome.first_error.code == "Employee.ParseFailed"
        assert (await store.count()).value == 0

    @pytest.mark.asyncio
    async def test_parse_failed_propagates(self, store):
        outcome = await process_content(store, '[{"name": ', content_type="application/json")
        assert outcome.first_error.code == "Employee.ParseFailed"

    @pytest.mark.asyncio
    async def test_no_parser_found(self, store):
        with patch('ingest.pipeline.select_parser') as mock_select:
            mock_select.return_value = Outcome.fail(MagicMock(code="Employee.NoParserFound"))
            outcome = await process_content(store, "x")
        assert outcome.first_error.code == "Employee.NoParserFound"

    @pytest.mark.asyncio
    async def test_lone_surrogate_escape_is_storage_failed(self, store):
        """JSON valido con escape \\ud800: errore restituito, nessuna eccezione."""
        content = (
            '[{"name":"A\\ud800","email":"a@example.com","tel":"010-1234-5678",'
            '"joined":"2020-01-01","dept":"\\ud800"}]'
        )
        outcome = await process_content(store, content, content_type="application/json")

        assert outcome.is_error
        assert outcome.first_error.code == "Employee.StorageFailed"
        assert (await store.count()).value == 0

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        mock_store = MagicMock()
        mock_store.insert_batch = AsyncMock(return_value=Outcome.fail(storage_failed("disk I/O error")))

        outcome = await process_content(mock_store, VALID_JSON)

        assert outcome.first_error.code == "Employee.StorageFailed"
        mock_store.insert_batch.assert_awaited_once()


class TestUpdateEmployee:
    """Test per update_employee."""

    @pytest.mark.asyncio
    async def test_merge_non_blank_fields(self, store):
        await process_content(store, VALID_JSON)

        outcome = await update_employee(
            store, "hong gildong", UpdateEmployeeRequest(email="new@example.com", tel="  ", joined="2021/02/03")
        )

        assert not outcome.is_error
        updated = outcome.value
        assert updated.name == "Hong Gildong"
        assert updated.email == "new@example.com"
        assert updated.phone == "010-1234-5678"
        assert updated.joined == date(2021, 2, 3)
        assert updated.extra == {"dept": "eng"}

    @pytest.mark.asyncio
    async def test_phone_alias(self, store):
        await process_content(store, VALID_JSON)
        outcome = await update_employee(store, "Hong Gildong", UpdateEmployeeRequest(phone="01099998888"))
        assert outcome.value.phone == "01099998888"

    @pytest.mark.asyncio
    async def test_not_found(self, store):
        outcome = await update_employee(store, "nobody", UpdateEmployeeRequest(email="x@x.com"))
        assert outcome.first_error.code == "Employee.NotFound"

    @pytest.mark.asyncio
    async def test_invalid_date(self, store):
        await process_content(store, VALID_JSON)
        outcome = await update_employee(store, "Hong Gildong", UpdateEmployeeRequest(joined="01/02/2021"))
        assert outcome.first_error.code == "Employee.ValidationFailed"

    @pytest.mark.asyncio
    async def test_invalid_field(self, store):
        await process_content(store, VALID_JSON)
        outcome = await update_employee(store, "Hong Gildong", UpdateEmployeeRequest(email="broken"))
        assert outcome.first_error.code == "Employee.email"

    @pytest.mark.asyncio
    async def test_duplicate_after_update(self, store):
        await process_content(store, VALID_JSON)
        await process_content(
            store,
            '[{"name":"Kim","email":"hong@example.com","tel":"010-1234-5678","joined":"2020-05-01"}]',
        )

        outcome = await update_employee(store, "Kim", UpdateEmployeeRequest(name="Hong Gildong"))
        assert outcome.first_error.code == "Employee.DuplicateAfterUpdate"
