"""Integration tests for the SQLite document store client."""

import pytest

from orgflow.core import db_client
from orgflow.core.db_client import (
    DatabaseError,
    RecordNotFoundError,
    VersionConflictError,
    parse_filter,
    sanitize_param,
)


@pytest.mark.integration
class TestRecords:
    """CRUD behaviour of the document store."""

    async def test_create_and_get(self, store):
        """Test a created document round-trips with its metadata."""
        created = await db_client.create_record(collection="users", data={"name": "Ada", "tags": ["a", "b"]})

        fetched = await db_client.get_record(collection="users", record_id=created["id"])

        assert fetched["name"] == "Ada"
        assert fetched["tags"] == ["a", "b"]
        assert fetched["version"] == 1
        assert fetched["created"] == fetched["updated"]

    async def test_create_duplicate_id_fails(self, store):
        """Test explicit ids must be unique."""
        await db_client.create_record(collection="users", data={"name": "Ada"}, record_id="u1")

        with pytest.raises(DatabaseError):
            await db_client.create_record(collection="users", data={"name": "Bob"}, record_id="u1")

    async def test_get_missing_record(self, store):
        """Test missing ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError, match="Record not found"):
            await db_client.get_record(collection="users", record_id="nope")

    async def test_invalid_collection_name(self, store):
        """Test collection names are restricted to identifiers."""
        with pytest.raises(ValueError, match="Invalid collection name"):
            await db_client.get_record(collection="users; DROP TABLE users", record_id="x")

    async def test_set_record_upserts(self, store):
        """Test set_record creates, then overwrites and bumps the version."""
        first = await db_client.set_record(collection="ratings", record_id="bob_ada", data={"average": 2.0, "x": 1})
        second = await db_client.set_record(collection="ratings", record_id="bob_ada", data={"average": 4.0})

        assert first["version"] == 1
        assert second["version"] == 2
        assert second["average"] == 4.0
        assert "x" not in second

    async def test_update_merges_fields(self, store):
        """Test updates merge top-level fields, replace lists and drop None fields."""
        created = await db_client.create_record(
            collection="tasks",
            data={"title": "T", "modules": [{"id": "m1"}, {"id": "m2"}], "completed_at": "2024-01-01"},
        )

        updated = await db_client.update_record(
            collection="tasks",
            record_id=created["id"],
            data={"modules": [{"id": "m2"}], "completed_at": None},
        )

        assert updated["title"] == "T"
        assert updated["modules"] == [{"id": "m2"}]
        assert "completed_at" not in updated
        assert updated["version"] == 2

    async def test_conditional_update_conflict(self, store):
        """Test a stale expected_version is rejected without writing."""
        created = await db_client.create_record(collection="tasks", data={"title": "T"})
        await db_client.update_record(collection="tasks", record_id=created["id"], data={"title": "T2"})

        with pytest.raises(VersionConflictError, match="expected 1, found 2"):
            await db_client.update_record(
                collection="tasks",
                record_id=created["id"],
                data={"title": "stale"},
                expected_version=1,
            )

        current = await db_client.get_record(collection="tasks", record_id=created["id"])
        assert current["title"] == "T2"

    async def test_conditional_update_on_missing_record(self, store):
        """Test a conditional update of a deleted record reports not found."""
        with pytest.raises(RecordNotFoundError):
            await db_client.update_record(collection="tasks", record_id="gone", data={"a": 1}, expected_version=1)

    async def test_increment_field(self, store):
        """Test numeric increments, treating a missing field as zero."""
        await db_client.create_record(collection="users", data={"name": "Ada"}, record_id="u1")

        await db_client.increment_field(collection="users", record_id="u1", field="points", amount=50)
        record = await db_client.increment_field(collection="users", record_id="u1", field="points", amount=25)

        assert record["points"] == 75
        assert record["version"] == 3

    async def test_increment_missing_record(self, store):
        """Test incrementing an unknown record raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            await db_client.increment_field(collection="users", record_id="nope", field="points", amount=1)

    async def test_delete_records_is_idempotent(self, store):
        """Test batch deletes count only existing documents and can be repeated."""
        ids = [(await db_client.create_record(collection="user_skills", data={"n": i}))["id"] for i in range(3)]

        assert await db_client.delete_records(collection="user_skills", record_ids=[*ids, "missing", ids[0]]) == 3
        assert await db_client.delete_records(collection="user_skills", record_ids=ids) == 0
        assert await db_client.delete_records(collection="user_skills", record_ids=[]) == 0

    async def test_delete_records_in_batches(self, store, monkeypatch):
        """Test deletes spanning several batches remove everything."""
        monkeypatch.setattr(db_client.constants, "CASCADE_BATCH_SIZE", 2)
        ids = [(await db_client.create_record(collection="ratings", data={"n": i}))["id"] for i in range(5)]

        assert await db_client.delete_records(collection="ratings", record_ids=ids) == 5
        assert await db_client.list_all_records(collection="ratings") == []


@pytest.mark.integration
class TestQueries:
    """Filtering, sorting and pagination."""

    @pytest.fixture
    async def tasks(self, store):
        await db_client.create_record(
            collection="tasks",
            record_id="t1",
            data={"creator_id": "lead1", "status": "draft", "assignee_ids": ["alice"], "retry": 0, "urgent": True},
        )
        await db_client.create_record(
            collection="tasks",
            record_id="t2",
            data={"creator_id": "lead2", "status": "assigned", "assignee_ids": ["alice", "bob"], "retry": 2},
        )
        await db_client.create_record(
            collection="tasks",
            record_id="t3",
            data={"creator_id": "lead1", "status": "review", "assignee_ids": ["bob"], "retry": 5, "urgent": False},
        )

    async def _ids(self, filter_query: str = "", sort: str = "") -> list[str]:
        records = await db_client.list_all_records(collection="tasks", filter_query=filter_query, sort=sort)
        return [record["id"] for record in records]

    async def test_array_contains(self, tasks):
        """Test ?= matches list membership."""
        assert await self._ids('assignee_ids ?= "alice"') == ["t1", "t2"]

    async def test_and_with_or_group(self, tasks):
        """Test && combined with a parenthesized || group."""
        query = 'status != "draft" && (creator_id = "lead1" || assignee_ids ?= "alice")'
        assert await self._ids(query) == ["t2", "t3"]

    async def test_typed_literals(self, tasks):
        """Test unquoted numbers and booleans compare as typed values."""
        assert await self._ids("retry >= 2") == ["t2", "t3"]
        assert await self._ids("urgent = true") == ["t1"]

    async def test_like_operator(self, tasks):
        """Test ~ performs a substring match."""
        assert await self._ids('status ~ "ss"') == ["t2"]

    async def test_sort_descending(self, tasks):
        """Test -field sorts descending."""
        assert await self._ids(sort="-retry") == ["t3", "t2", "t1"]

    async def test_pagination(self, tasks):
        """Test page and per_page slice the ordered results."""
        page = await db_client.list_records(collection="tasks", page=2, per_page=2)
        assert [record["id"] for record in page] == ["t3"]

    async def test_get_first_record(self, tasks):
        """Test get_first_record returns a match or None."""
        first = await db_client.get_first_record(collection="tasks", filter_query='creator_id = "lead2"')
        assert first["id"] == "t2"
        assert await db_client.get_first_record(collection="tasks", filter_query='creator_id = "x"') is None

    async def test_quoted_values_are_parameters(self, tasks):
        """Test filter values are bound, never interpolated."""
        value = db_client.sanitize_param('lead1" || creator_id != "')
        assert await self._ids(f'creator_id = "{value}"') == []

    @pytest.mark.parametrize("value", ["josé", "Diseño", 'o"brien', "back\\slash", "x && y || (z)"])
    async def test_escaped_values_match(self, store, value):
        """Test sanitized non-ASCII, quote and operator-bearing values match stored text."""
        await db_client.create_record(
            collection="tasks",
            record_id="hit",
            data={"creator_id": value, "assignee_ids": [value, "bob"]},
        )
        await db_client.create_record(collection="tasks", record_id="miss", data={"creator_id": "lead1"})
        literal = f'"{db_client.sanitize_param(value)}"'

        assert await self._ids(f"creator_id = {literal}") == ["hit"]
        assert await self._ids(f"(creator_id = {literal} || assignee_ids ?= {literal})") == ["hit"]
        assert await self._ids(f"assignee_ids ?= {literal} && creator_id != \"lead1\"") == ["hit"]


@pytest.mark.integration
class TestParseFilter:
    """Unit-level checks of the filter translator."""

    def test_empty_filter(self):
        """Test an empty filter produces no WHERE clause."""
        assert parse_filter("") == ("", [])

    def test_single_comparison(self):
        """Test a single comparison becomes a json_extract condition."""
        clause, params = parse_filter('status = "draft"')

        assert clause == "json_extract(data, '$.status') = ?"
        assert params == ["draft"]

    def test_invalid_syntax(self):
        """Test malformed filters raise ValueError."""
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            parse_filter("status draft")

    def test_quoted_literal_is_decoded(self):
        """Test escaped literals bind the original text, not the escape sequences."""
        clause, params = parse_filter(f'rated_id = "{sanitize_param("josé")}" && (a = "x || y" || b = "q\\"z")')

        assert clause == (
            "json_extract(data, '$.rated_id') = ? "
            "AND (json_extract(data, '$.a') = ? OR json_extract(data, '$.b') = ?)"
        )
        assert params == ["josé", "x || y", 'q"z']

    def test_bad_escape_is_invalid(self):
        """Test malformed escapes inside a literal raise ValueError."""
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            parse_filter('status = "bad\\q"')
