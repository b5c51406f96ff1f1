"""Tests for the timestamp hierarchy resolver."""

from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from crudkit import TimestampNode, TimestampsResolver
from crudkit.core.errors import (
    InvalidDateTimeFormatError,
    InvalidHierarchyError,
    InvalidOperatorError,
    InvalidUpdatedSinceFieldError,
)
from crudkit.runtime.timestamps import parse_iso_datetime
from tests.models import Address, Contact, DemandSource, Order, Product, SupplyNetwork


HIERARCHY = [
    TimestampNode(DemandSource),
    TimestampNode(Contact, include=[TimestampNode(Address)]),
]


@pytest.fixture
def timestamps() -> TimestampsResolver:
    return TimestampsResolver(Product, HIERARCHY)


def _compile(expression, dialect) -> str:
    return str(select(expression).compile(dialect=dialect))


class TestTimestampColumns:
    """Tests for the qualifying columns of a hierarchy."""

    def test_list_timestamp_columns(self, timestamps: TimestampsResolver):
        assert timestamps.list_timestamp_columns() == [
            "Product.updated_at",
            "demand_source.last_change_date",
            "contacts.updated_at",
            "contacts.address.updated_at",
        ]

    def test_separator_and_wrap(self, timestamps: TimestampsResolver):
        assert timestamps.list_timestamp_columns(separator="->", wrap="$")[-1] == (
            "$contacts->address.updated_at$"
        )

    def test_entities_without_timestamps_are_skipped(self):
        timestamps = TimestampsResolver(Product, [TimestampNode(SupplyNetwork), TimestampNode(Order)])

        assert timestamps.list_timestamp_columns() == ["Product.updated_at"]
        assert timestamps.joins() == []

    def test_has_timestamps(self):
        assert not TimestampsResolver(SupplyNetwork).has_timestamps()
        assert TimestampsResolver(Product, [TimestampNode(SupplyNetwork)]).has_timestamps()

    def test_joins(self, timestamps: TimestampsResolver):
        assert [join.path for join in timestamps.joins()] == [
            ("demand_source",),
            ("contacts",),
            ("contacts", "address"),
        ]

    def test_invalid_hierarchy(self):
        timestamps = TimestampsResolver(Product, [TimestampNode(Address)])

        with pytest.raises(InvalidHierarchyError) as exc_info:
            timestamps.columns()

        assert exc_info.value.params == {"source": "Product", "target": "Address"}
        assert exc_info.value.status_code == 500


class TestLatestTimestamp:
    """Tests for the latest timestamp expressions."""

    def test_greatest_on_postgresql(self, timestamps: TimestampsResolver):
        sql = _compile(timestamps.build_latest_timestamp_expression(), postgresql.dialect())

        assert "greatest(" in sql.lower()
        assert "OVER (PARTITION BY product.id)" in sql
        assert "AS TIMESTAMP" in sql

    def test_greatest_on_sqlite(self, timestamps: TimestampsResolver):
        sql = _compile(timestamps.build_latest_timestamp_expression(), sqlite.dialect())

        assert "greatest" not in sql.lower()
        assert "max(max(" in sql

    def test_single_column(self):
        timestamps = TimestampsResolver(Product)
        sql = _compile(timestamps.build_latest_timestamp_expression(), postgresql.dialect())

        assert "OVER" not in sql
        assert "coalesce(product.updated_at" in sql

    def test_no_timestamps(self):
        timestamps = TimestampsResolver(SupplyNetwork)

        assert timestamps.build_greatest_expression() is None
        assert timestamps.build_latest_timestamp_expression() is None


class TestSinceFilter:
    """Tests for updated_since filters."""

    def test_or_over_columns(self, timestamps: TimestampsResolver):
        condition = timestamps.build_since_filter("2024-01-01T00:00:00Z")
        sql = str(select(Product.id).where(condition.predicate).compile(dialect=sqlite.dialect()))

        assert sql.count(" OR ") == 3
        assert len(condition.joins) == 3

    def test_operator_alias(self, timestamps: TimestampsResolver):
        condition = timestamps.build_since_filter("2024-01-01T00:00:00Z", "ge")

        assert len(condition.where) == 1

    def test_rejects_non_comparison_operators(self, timestamps: TimestampsResolver):
        with pytest.raises(InvalidOperatorError):
            timestamps.build_since_filter("2024-01-01T00:00:00Z", "like")

    def test_invalid_date(self, timestamps: TimestampsResolver):
        with pytest.raises(InvalidDateTimeFormatError) as exc_info:
            timestamps.build_since_filter("yesterday", field="updated_at")

        assert "updated_at" in exc_info.value.message

    def test_without_timestamps(self):
        with pytest.raises(InvalidUpdatedSinceFieldError):
            TimestampsResolver(SupplyNetwork).build_since_filter("2024-01-01T00:00:00Z")


class TestParseIsoDatetime:
    """Tests for parse_iso_datetime."""

    def test_zulu(self):
        assert parse_iso_datetime("2024-02-15T10:30:00Z") == datetime(2024, 2, 15, 10, 30)

    def test_offset_is_converted_to_utc(self):
        assert parse_iso_datetime("2024-02-15T12:30:00+02:00") == datetime(2024, 2, 15, 10, 30)

    def test_naive(self):
        assert parse_iso_datetime("2024-02-15") == datetime(2024, 2, 15)

    @pytest.mark.parametrize("value", ["", "15/02/2024", "2024-13-01"])
    def test_invalid(self, value: str):
        with pytest.raises(InvalidDateTimeFormatError):
            parse_iso_datetime(value)
