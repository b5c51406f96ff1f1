"""Tests for DataProvider: permission checks, validation, hooks and error wrapping."""

import logging
from typing import Any

import pytest

from crudkit import AuthContext, Database, DataProvider, ListRequest, ProviderHooks, Repository
from crudkit.core.errors import (
    ForbiddenError,
    ImmutableFieldError,
    InvalidRelationError,
    ItemNotFoundError,
    NoAccessError,
    NoPermissionsError,
    UnableToCreateError,
    UnableToListError,
    ValidationError,
)
from tests.factories import make_auth, make_product_config


@pytest.fixture
def provider(database: Database) -> DataProvider:
    return DataProvider(make_product_config(), database)


class FailingRepository(Repository):
    """Repository whose queries blow up with unclassified errors."""

    async def get_list(self, auth, request):
        raise RuntimeError("connection reset")

    async def create_item(self, auth, attributes):
        raise RuntimeError("disk full")


# =============================================================================
# Read
# =============================================================================


class TestRead:
    """Tests for get_list and get_item."""

    async def test_get_list_serializes(self, provider: DataProvider, auth: AuthContext):
        items, count = await provider.get_list(auth, ListRequest(sort_by="name"))

        assert count == 3
        assert [item["name"] for item in items] == ["Bolt", "Nut", "Screw"]
        assert items[0]["market_place"] == {"id": 17, "name": "North"}
        assert {contact["name"] for contact in items[0]["contacts"]} == {"Alice", "Bob"}

    async def test_get_item(self, provider: DataProvider, auth: AuthContext):
        item = await provider.get_item(auth, 1)

        assert item["name"] == "Bolt"
        assert item["product_metadata"]["data"] == "bolt-meta"
        assert sorted(order["quantity"] for order in item["orders"]) == [1, 2]

    async def test_get_item_not_found_passes_through(self, provider: DataProvider, auth: AuthContext):
        with pytest.raises(ItemNotFoundError):
            await provider.get_item(auth, 4)

    async def test_read_gate(self, database: Database):
        def gate(auth: AuthContext, id: Any) -> None:
            if not auth.get("reader"):
                raise ForbiddenError()

        provider = DataProvider(make_product_config(read_permission_gate=gate), database)

        with pytest.raises(ForbiddenError):
            await provider.get_list(make_auth(reader=False), ListRequest())

        items, _ = await provider.get_list(make_auth(), ListRequest())
        assert len(items) == 3

    async def test_response_schema(self, database: Database, auth: AuthContext):
        from pydantic import BaseModel

        class ProductOut(BaseModel):
            id: int
            name: str

        provider = DataProvider(make_product_config(response_schema=ProductOut), database)

        assert await provider.get_item(auth, 2) == {"id": 2, "name": "Nut"}

    async def test_unclassified_errors_are_wrapped(self, database: Database, auth: AuthContext):
        config = make_product_config()
        provider = DataProvider(config, database, repository=FailingRepository(config, database))

        with pytest.raises(UnableToListError) as exc_info:
            await provider.get_list(auth, ListRequest())

        assert isinstance(exc_info.value.internal_error, RuntimeError)
        assert exc_info.value.status_code == 400


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    """Tests for create_item."""

    async def test_create(self, provider: DataProvider, auth: AuthContext):
        item = await provider.create_item(auth, {"name": "Pin", "market_place": {"id": 20}})

        assert item["name"] == "Pin"
        assert item["supply_network_id"] == 20
        assert item["status_id"] == 1

    async def test_foreign_market_place(self, provider: DataProvider, auth: AuthContext):
        with pytest.raises(NoAccessError) as exc_info:
            await provider.create_item(auth, {"name": "Pin", "market_place": {"id": 99}})

        assert exc_info.value.params == {"key": "market_place", "value": 99}

    async def test_missing_permission_data_is_skipped(
        self,
        provider: DataProvider,
        auth: AuthContext,
        caplog: pytest.LogCaptureFixture,
    ):
        with caplog.at_level(logging.WARNING, logger="crudkit"):
            item = await provider.create_item(auth, {"name": "Loose", "supply_network_id": 17})

        assert item["name"] == "Loose"
        assert any("skipped" in record.getMessage() for record in caplog.records)

    async def test_invalid_relation(self, provider: DataProvider, auth: AuthContext):
        with pytest.raises(InvalidRelationError) as exc_info:
            await provider.create_item(auth, {
                "name": "Pin",
                "market_place": {"id": 17},
                "demand_source": {"id": 77},
            })

        assert exc_info.value.params == {"field": "demand_source"}

    async def test_missing_collection_entry(self, database: Database, auth: AuthContext):
        provider = DataProvider(
            make_product_config(permission_definitions=[]),
            database,
        )

        with pytest.raises(InvalidRelationError):
            await provider.create_item(auth, {"name": "Pin", "orders": [{"id": 1}, {"id": 99}]})

    async def test_validate_input(self, database: Database, auth: AuthContext):
        async def validate_input(complete, auth, existing, input):
            if not complete.get("name"):
                raise ValidationError("Name is required.")

        provider = DataProvider(make_product_config(validate_input=validate_input), database)

        with pytest.raises(ValidationError) as exc_info:
            await provider.create_item(auth, {"market_place": {"id": 17}})

        assert exc_info.value.message == "Name is required."

    async def test_hooks(self, database: Database, auth: AuthContext):
        calls = []

        async def before_create(input, auth):
            return {**input, "name": input["name"].upper()}

        async def after_create(created, input, auth):
            calls.append((created.name, input["name"]))
            return created

        config = make_product_config(hooks=ProviderHooks(before_create=before_create, after_create=after_create))
        provider = DataProvider(config, database)

        item = await provider.create_item(auth, {"name": "pin", "market_place": {"id": 17}})

        assert item["name"] == "PIN"
        assert calls == [("PIN", "PIN")]

    async def test_custom_deserializer(self, database: Database, auth: AuthContext):
        async def deserialize(input, auth, existing):
            return {**input, "available": False}

        provider = DataProvider(make_product_config(deserialize=deserialize), database)

        item = await provider.create_item(auth, {"name": "Pin", "market_place": {"id": 17}})

        assert item["available"] is False

    async def test_unclassified_errors_are_wrapped(self, database: Database, auth: AuthContext):
        config = make_product_config()
        provider = DataProvider(config, database, repository=FailingRepository(config, database))

        with pytest.raises(UnableToCreateError) as exc_info:
            await provider.create_item(auth, {"name": "Pin", "market_place": {"id": 17}})

        assert "disk full" in str(exc_info.value.internal_error)


# =============================================================================
# Update / delete
# =============================================================================


class TestUpdate:
    """Tests for update_item."""

    async def test_full_update(self, provider: DataProvider, auth: AuthContext):
        item = await provider.update_item(auth, 2, {"name": "Hex nut"})

        assert item["id"] == 2
        assert item["name"] == "Hex nut"

    async def test_foreign_entity(self, provider: DataProvider, auth: AuthContext):
        with pytest.raises(NoPermissionsError):
            await provider.update_item(auth, 4, {"name": "Mine"})

    async def test_immutable_field(self, database: Database, auth: AuthContext):
        provider = DataProvider(make_product_config(immutable_paths=["demand_source.id"]), database)

        with pytest.raises(ImmutableFieldError):
            await provider.update_item(auth, 1, {"demand_source": {"id": 6}})

        # not set yet, so it can be set once
        item = await provider.update_item(auth, 3, {"demand_source": {"id": 6}})
        assert item["demand_source_id"] == 6

    async def test_partial_update(self, database: Database, auth: AuthContext):
        seen: dict[str, Any] = {}

        async def validate_input(complete, auth, existing, input):
            seen["complete"] = complete
            seen["input"] = input

        async def before_update(input, id, existing, auth):
            seen["existing"] = existing
            return input

        async def after_update(updated, input, id, before, auth):
            seen["before"] = before
            return updated

        config = make_product_config(
            validate_input=validate_input,
            hooks=ProviderHooks(before_update=before_update, after_update=after_update),
        )
        provider = DataProvider(config, database)

        item = await provider.update_item(auth, 1, {"name": "Bolt v2"}, is_partial=True)

        assert item["name"] == "Bolt v2"
        assert seen["input"] == {"name": "Bolt v2"}
        assert seen["complete"]["name"] == "Bolt v2"
        assert seen["complete"]["market_place"] == {"id": 17, "name": "North"}
        assert seen["existing"]["name"] == "Bolt"
        assert seen["before"]["name"] == "Bolt"

    async def test_full_update_validates_input_alone(self, database: Database, auth: AuthContext):
        seen: dict[str, Any] = {}

        async def validate_input(complete, auth, existing, input):
            seen["complete"] = complete

        provider = DataProvider(make_product_config(validate_input=validate_input), database)

        await provider.update_item(auth, 1, {"name": "Bolt v2"})

        assert seen["complete"] == {"name": "Bolt v2", "id": 1}


class TestDelete:
    """Tests for delete_item."""

    async def test_delete(self, provider: DataProvider, auth: AuthContext):
        item = await provider.delete_item(auth, 3)

        assert item["name"] == "Screw"
        with pytest.raises(ItemNotFoundError):
            await provider.get_item(auth, 3)

    async def test_foreign_entity(self, provider: DataProvider, auth: AuthContext):
        with pytest.raises(NoPermissionsError):
            await provider.delete_item(auth, 4)

    async def test_missing_metadata_denies(self, provider: DataProvider):
        with pytest.raises(NoPermissionsError):
            await provider.delete_item(AuthContext(), 1)
