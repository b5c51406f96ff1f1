"""Tests for list requests, settings, errors, auth context and small helpers."""

from pathlib import Path

import pytest

from crudkit import AuthContext, ListRequest, Validator
from crudkit.core.errors import (
    ImmutableFieldError,
    ItemNotFoundError,
    MaximumPageSizeError,
    NoAccessError,
    ValidationError,
)
from crudkit.core.utils import deep_merge
from crudkit.runtime.validator import get_path
from crudkit.service.settings import Settings
from crudkit.viewsets import Capability, EntityConfig
from tests.models import Product


class TestListRequest:
    """Tests for ListRequest parsing and pagination."""

    def test_defaults(self):
        request = ListRequest.from_query({})

        assert request.filter == []
        assert request.page == 1
        assert request.page_size == 25
        assert request.offset == 0

    def test_from_query(self):
        request = ListRequest.from_query({
            "filter": ["name ct b", "market_place.id eq 17"],
            "sort_by": "-name",
            "q": "bolt",
            "page": "3",
            "page_size": "10",
        })

        assert request.filter == ["name ct b", "market_place.id eq 17"]
        assert request.sort_by == "-name"
        assert request.q == "bolt"
        assert request.page == 3
        assert request.offset == 20

    def test_single_filter_string(self):
        assert ListRequest.from_query({"filter": "name eq Bolt"}).filter == ["name eq Bolt"]

    def test_last_scalar_wins(self):
        assert ListRequest.from_query({"page": ["1", "2"]}).page == 2

    def test_invalid_page(self):
        with pytest.raises(ValidationError) as exc_info:
            ListRequest.from_query({"page": "zero"})

        assert "page" in exc_info.value.message

    def test_page_below_one(self):
        with pytest.raises(ValidationError):
            ListRequest.from_query({"page": "-1"})

    def test_maximum_page_size(self):
        request = ListRequest.from_query({"page_size": "500"}, maximum_page_size=100)

        with pytest.raises(MaximumPageSizeError) as exc_info:
            request.get_page_size()

        assert exc_info.value.status_code == 400
        assert "500" in exc_info.value.message

    def test_raw_parameters(self):
        request = ListRequest.from_query({"tag": ["a", "b"], "limit": "2.5"})

        assert request.has("tag")
        assert request.get_array("tag") == ["a", "b"]
        assert request.get_string("tag") == "b"
        assert request.get_number("limit") == 2.5
        assert request.get_number("missing") is None

    def test_raw_parameter_not_a_number(self):
        request = ListRequest.from_query({"limit": "many"})

        with pytest.raises(ValidationError):
            request.get_number("limit")


class TestErrors:
    """Tests for the error payload."""

    def test_to_dict(self):
        assert ItemNotFoundError().to_dict() == {
            "code": 404,
            "error": "Not found",
            "message": "The item does not exist or you do not have access.",
        }

    def test_parametrized_message(self):
        error = NoAccessError(params={"key": "market_place", "value": 99})

        assert error.status_code == 403
        assert error.message == "You do not have access to market_place '99'."

    def test_explicit_message(self):
        assert ValidationError("Name is required.").message == "Name is required."


class TestAuthContext:
    """Tests for AuthContext accessors."""

    def test_values(self):
        auth = AuthContext({"market_place": [17, 20], "reader": True})

        assert auth.values("market_place") == [17, 20]
        assert auth.values("reader") == [True]
        assert auth.values("missing") == []

    def test_has_value(self):
        auth = AuthContext({"market_place": [], "other": [None], "flag": False})

        assert not auth.has_value("market_place")
        assert not auth.has_value("other")
        assert auth.has_value("flag")
        assert not auth.has_value("missing")

    def test_actor_id(self):
        assert AuthContext({"internal": {"id": 42}}).actor_id == 42
        assert AuthContext().actor_id is None


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested(self):
        merged = deep_merge(
            {"name": "Bolt", "product_metadata": {"pk": 1, "data": "a"}},
            {"product_metadata": {"data": "b"}},
        )

        assert merged == {"name": "Bolt", "product_metadata": {"pk": 1, "data": "b"}}

    def test_lists_are_replaced(self):
        merged = deep_merge({"orders": [{"id": 1}, {"id": 2}]}, {"orders": [{"id": 3}]})

        assert merged == {"orders": [{"id": 3}]}

    def test_original_untouched(self):
        original = {"product_metadata": {"data": "a"}}

        deep_merge(original, {"product_metadata": {"data": "b"}})

        assert original == {"product_metadata": {"data": "a"}}


class TestImmutableFields:
    """Tests for Validator.validate_immutable_fields."""

    @pytest.fixture
    def validator(self) -> Validator:
        return Validator(Product, immutable_paths=["demand_source.id", "name"])

    def test_get_path(self):
        assert get_path({"a": {"b": 1}}, "a.b") == 1
        assert get_path({"a": None}, "a.b", None) is None

    def test_changed_value(self, validator: Validator):
        with pytest.raises(ImmutableFieldError) as exc_info:
            validator.validate_immutable_fields(
                {"demand_source": {"id": 6}},
                {"name": "Bolt", "demand_source": {"id": 5}},
            )

        assert exc_info.value.params == {"field": "demand_source.id"}

    def test_same_value(self, validator: Validator):
        validator.validate_immutable_fields(
            {"name": "Bolt", "demand_source": {"id": 5}},
            {"name": "Bolt", "demand_source": {"id": 5}},
        )

    def test_absent_from_input(self, validator: Validator):
        validator.validate_immutable_fields({}, {"name": "Bolt", "demand_source": {"id": 5}})

    def test_not_yet_set(self, validator: Validator):
        validator.validate_immutable_fields({"demand_source": {"id": 6}}, {"demand_source": None})


class TestEntityConfig:
    """Tests for EntityConfig defaults."""

    def test_defaults(self):
        config = EntityConfig(model=Product)

        assert config.name == "Product"
        assert config.max_depth == 16
        assert [definition.key for definition in config.permission_definitions] == ["market_place"]
        assert config.supports(Capability.CREATE)

    def test_capabilities(self):
        config = EntityConfig(model=Product, capabilities=Capability.READ)

        assert config.supports(Capability.LIST)
        assert config.supports(Capability.GET)
        assert not config.supports(Capability.DELETE)


class TestSettings:
    """Tests for Settings loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.default_page_size == 25
        assert settings.maximum_page_size == 100
        assert settings.pool_max is None

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
        monkeypatch.setenv("SQL_ECHO", "true")
        monkeypatch.setenv("DB_POOL_MAX", "5")
        monkeypatch.setenv("MAXIMUM_PAGE_SIZE", "50")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.database_url == "sqlite+aiosqlite://"
        assert settings.sql_echo is True
        assert settings.pool_max == 5
        assert settings.maximum_page_size == 50
        assert settings.log_level == "DEBUG"

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "crudkit.yaml"
        path.write_text(
            "database:\n"
            "  url: sqlite+aiosqlite:///products.db\n"
            "pagination:\n"
            "  default_page_size: 10\n"
            "logging:\n"
            "  level: warning\n"
        )

        settings = Settings.from_yaml(path)

        assert settings.database_url == "sqlite+aiosqlite:///products.db"
        assert settings.default_page_size == 10
        assert settings.maximum_page_size == 100
        assert settings.log_level == "WARNING"

    def test_round_trip_through_dict(self):
        settings = Settings(database_url="sqlite+aiosqlite://", pool_max=3)

        assert Settings.from_dict(settings.to_dict()) == settings
