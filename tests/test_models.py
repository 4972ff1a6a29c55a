"""Tests for gateway domain models."""

import pytest
from pydantic import ValidationError

from connectgw.gateway import (
    CascadeResult,
    Component,
    ComponentType,
    ConfigureRequest,
    ConfigureResult,
    ExternalAccount,
    ExternalApp,
    FailedDeletion,
    InvalidArgument,
    Page,
    PropDefinition,
    PropKind,
    PropOption,
    Tenant,
)
from connectgw.gateway.errors import ErrorKind
from connectgw.gateway.models import walk_pages
from connectgw.connectors.dummy import app_payload


def account_payload(**overrides):
    payload = {
        "id": "apn_1",
        "name": "Work",
        "external_id": "user-1",
        "healthy": True,
        "dead": False,
        "app": app_payload("slack", app_id="app_OkrhR1", name="Slack"),
        "created_at": "2025-03-01T10:00:00+00:00",
        "updated_at": "2025-03-02T10:00:00+00:00",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# Tenant
# =============================================================================


class TestTenant:
    """Tests for Tenant."""

    def test_strips_whitespace(self):
        """Identifiers are stored stripped."""
        assert Tenant(external_user_id="  user-1 ").external_user_id == "user-1"

    @pytest.mark.parametrize("value", ["", "   ", None, 42])
    def test_blank_is_invalid_argument(self, value):
        """Blank or non-string identities are rejected with InvalidArgument."""
        with pytest.raises(InvalidArgument):
            Tenant(external_user_id=value)

    def test_frozen_and_hashable(self):
        """Tenants are immutable values."""
        tenant = Tenant(external_user_id="user-1")
        assert tenant == Tenant(external_user_id="user-1")
        assert len({tenant, Tenant(external_user_id="user-1")}) == 1
        with pytest.raises(ValidationError):
            tenant.external_user_id = "user-2"


# =============================================================================
# Apps and accounts
# =============================================================================


class TestExternalApp:
    """Tests for ExternalApp."""

    def test_from_payload(self):
        """The platform's app shape maps onto the model."""
        app = ExternalApp.from_payload(app_payload("google_sheets", app_id="app_1Z2hw1", name="Google Sheets"))
        assert app.app_id == "app_1Z2hw1"
        assert app.slug == "google_sheets"
        assert app.display_name == "Google Sheets"

    def test_matches_id_or_slug(self):
        """An app matches its id and its slug."""
        app = ExternalApp.from_payload(app_payload("slack", app_id="app_OkrhR1"))
        assert app.matches("slack")
        assert app.matches("app_OkrhR1")
        assert not app.matches("github")


class TestExternalAccount:
    """Tests for ExternalAccount."""

    def test_from_payload(self):
        """Account payloads parse, including timestamps and owner."""
        account = ExternalAccount.from_payload(account_payload())
        assert account.account_id == "apn_1"
        assert account.external_user_id == "user-1"
        assert account.app.slug == "slack"
        assert account.created_at.year == 2025

    def test_dead_forces_unhealthy(self):
        """A dead account is never healthy, whatever the payload says."""
        account = ExternalAccount.from_payload(account_payload(healthy=True, dead=True))
        assert account.dead is True
        assert account.healthy is False

    def test_no_credentials_key_when_absent(self):
        """Serialized accounts without credentials have no credentials key."""
        account = ExternalAccount.from_payload(account_payload())
        assert "credentials" not in account.model_dump()
        assert "credentials" not in account.model_dump(mode="json")
        assert "credentials" not in account.model_dump_json()

    def test_credentials_kept_when_present(self):
        """Credentials are serialized when the account carries them."""
        account = ExternalAccount.from_payload(account_payload(credentials={"token": "x"}))
        assert account.model_dump()["credentials"] == {"token": "x"}

    def test_without_credentials(self):
        """without_credentials removes the blob entirely."""
        account = ExternalAccount.from_payload(account_payload(credentials={"token": "x"}))
        stripped = account.without_credentials()
        assert stripped.credentials is None
        assert "credentials" not in stripped.model_dump()
        assert account.credentials == {"token": "x"}

    def test_missing_owner_rejected(self):
        """An account payload without an owner does not parse."""
        with pytest.raises(ValueError):
            ExternalAccount.from_payload(account_payload(external_id=None))


# =============================================================================
# Components
# =============================================================================


class TestComponentType:
    """Tests for ComponentType.coerce."""

    @pytest.mark.parametrize("value", ["action", "actions", "ACTION", " action "])
    def test_action_forms(self, value):
        """Singular, plural and upper-case forms are accepted."""
        assert ComponentType.coerce(value) == ComponentType.ACTION

    @pytest.mark.parametrize("value", ["source", "", None, 3])
    def test_invalid(self, value):
        """Anything else is InvalidArgument."""
        with pytest.raises(InvalidArgument):
            ComponentType.coerce(value)


class TestPropDefinition:
    """Tests for PropDefinition parsing."""

    def test_from_payload(self):
        """configurable_props entries map onto the model."""
        prop = PropDefinition.from_payload({
            "name": "sheet",
            "type": "string",
            "label": "Sheet",
            "optional": True,
            "remoteOptions": True,
            "dependsOn": ["spreadsheet"],
        })
        assert prop.kind == PropKind.STRING
        assert prop.required is False
        assert prop.remote_options is True
        assert prop.depends_on == frozenset({"spreadsheet"})

    def test_interface_kinds(self):
        """Platform interface types are known kinds."""
        assert PropDefinition.from_payload({"name": "http", "type": "$.interface.http"}).kind == PropKind.HTTP_INTERFACE
        assert PropDefinition.from_payload({"name": "db", "type": "$.service.db"}).kind == PropKind.DB_SERVICE

    def test_unknown_kind_rejected(self):
        """An unknown prop type fails parsing."""
        with pytest.raises(ValidationError):
            PropDefinition.from_payload({"name": "x", "type": "hologram"})


class TestComponent:
    """Tests for Component parsing and graph validation."""

    def payload(self, props):
        return {"key": "sheets.addRow", "name": "Add Row", "version": "0.2.1", "configurable_props": props}

    def test_from_payload(self):
        """Props keep their order; the app comes from the app prop."""
        component = Component.from_payload(
            ComponentType.ACTION,
            self.payload([
                {"name": "googleSheets", "type": "app", "app": "google_sheets"},
                {"name": "spreadsheet", "type": "string"},
                {"name": "sheet", "type": "string", "dependsOn": ["spreadsheet"]},
            ]),
        )
        assert component.prop_names == ["googleSheets", "spreadsheet", "sheet"]
        assert component.app == "google_sheets"
        assert component.get_prop("sheet").depends_on == frozenset({"spreadsheet"})
        assert component.get_prop("nope") is None

    def test_dangling_dependency_rejected(self):
        """A dependency on an unknown prop fails parsing."""
        with pytest.raises(ValueError, match="unknown props"):
            Component.from_payload(
                ComponentType.ACTION,
                self.payload([{"name": "sheet", "type": "string", "dependsOn": ["spreadsheet"]}]),
            )

    def test_cycle_rejected(self):
        """A dependency cycle fails parsing."""
        with pytest.raises(ValueError, match="Circular"):
            Component.from_payload(
                ComponentType.ACTION,
                self.payload([
                    {"name": "a", "type": "string", "dependsOn": ["b"]},
                    {"name": "b", "type": "string", "dependsOn": ["a"]},
                ]),
            )

    def test_serializes_depends_on_sorted(self):
        """depends_on serializes as a sorted list."""
        component = Component.from_payload(
            ComponentType.TRIGGER,
            self.payload([
                {"name": "a", "type": "string"},
                {"name": "b", "type": "string"},
                {"name": "c", "type": "string", "dependsOn": ["b", "a"]},
            ]),
        )
        dumped = component.model_dump(mode="json")
        assert dumped["type"] == "trigger"
        assert dumped["props"][2]["depends_on"] == ["a", "b"]


# =============================================================================
# Pagination, configuration and cascade results
# =============================================================================


class TestPage:
    """Tests for Page cursor handling."""

    def test_page_has_cursor(self):
        """A page continues at its end cursor."""
        payload = {"data": [1, 2], "page_info": {"end_cursor": "c2", "total_count": 5}}
        assert Page.cursor_from_payload(payload) == "c2"

    def test_short_page_continues(self):
        """A page capped below the requested size still continues."""
        payload = {"data": [1], "page_info": {"end_cursor": "c1"}}
        assert Page.cursor_from_payload(payload) == "c1"

    def test_page_holding_everything_is_last(self):
        """A page with all total_count items is the last."""
        payload = {"data": [1, 2], "page_info": {"end_cursor": "c2", "total_count": 2}}
        assert Page.cursor_from_payload(payload) is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"data": [], "page_info": {"end_cursor": "c"}},
            {"data": [1], "page_info": {}},
            {"data": [1]},
        ],
    )
    def test_last_page(self, payload):
        """An empty page or one without an end cursor is the last."""
        assert Page.cursor_from_payload(payload) is None


class TestWalkPages:
    """Tests for walk_pages."""

    @pytest.mark.asyncio
    async def test_stops_at_total_count(self):
        """Walking stops once total_count items were seen, even with a cursor."""
        pages = {
            None: Page[int](items=[1, 2], next_cursor="c2", total_count=3),
            "c2": Page[int](items=[3], next_cursor="c3", total_count=3),
        }
        requested = []

        async def fetch(cursor):
            requested.append(cursor)
            return pages[cursor]

        assert [item async for item in walk_pages(fetch)] == [1, 2, 3]
        assert requested == [None, "c2"]

    @pytest.mark.asyncio
    async def test_stops_on_repeated_cursor(self):
        """A cursor that does not advance ends the walk."""

        async def fetch(cursor):
            return Page[int](items=[1], next_cursor="same")

        assert [item async for item in walk_pages(fetch)] == [1, 1]


class TestConfigureRequest:
    """Tests for ConfigureRequest validation."""

    def valid(self, **overrides):
        data = {
            "component_key": "sheets.addRow",
            "component_type": "action",
            "external_user_id": "user-1",
            "prop_name": "sheet",
            "configured_props": {"spreadsheet": "ss-1"},
        }
        data.update(overrides)
        return data

    def test_valid(self):
        """A complete request validates and coerces the type."""
        request = ConfigureRequest.model_validate(self.valid())
        assert request.component_type == ComponentType.ACTION
        assert request.has_value("spreadsheet")
        assert not request.has_value("sheet")

    def test_empty_props_allowed(self):
        """An empty configured_props mapping is allowed."""
        assert ConfigureRequest.model_validate(self.valid(configured_props={})).configured_props == {}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"configured_props": None},
            {"configured_props": ["spreadsheet"]},
            {"prop_name": ""},
            {"component_key": None},
            {"external_user_id": "  "},
            {"component_type": "widget"},
        ],
    )
    def test_invalid(self, overrides):
        """Missing or malformed fields are InvalidArgument."""
        with pytest.raises(InvalidArgument):
            ConfigureRequest.model_validate(self.valid(**overrides))

    def test_copies_configured_props(self):
        """The caller's mapping is copied, not shared."""
        props = {"spreadsheet": "ss-1"}
        request = ConfigureRequest.model_validate(self.valid(configured_props=props))
        request.to_payload()["configured_props"]["sheet"] = 1
        assert props == {"spreadsheet": "ss-1"}
        assert request.configured_props is not props

    def test_none_value_is_absent(self):
        """A None value does not count as configured."""
        request = ConfigureRequest.model_validate(self.valid(configured_props={"spreadsheet": None}))
        assert not request.has_value("spreadsheet")


class TestConfigureResult:
    """Tests for ConfigureResult parsing."""

    def test_option_shapes(self):
        """Label/value dicts, lv wrappers and bare values are all options."""
        result = ConfigureResult.from_payload(
            "sheet",
            {"options": [{"label": "A", "value": 1}, {"lv": {"label": "B", "value": 2}}, "c"]},
        )
        assert result.options == [
            PropOption(label="A", value=1),
            PropOption(label="B", value=2),
            PropOption(label="c", value="c"),
        ]

    def test_string_options(self):
        """string_options and context are carried through."""
        result = ConfigureResult.from_payload(
            "worksheetId", {"options": None, "string_options": ["x"], "context": {"page": 1}}
        )
        assert result.options == []
        assert result.string_options == ["x"]
        assert result.context == {"page": 1}


class TestCascadeResult:
    """Tests for CascadeResult derived fields."""

    def test_partial(self):
        """Mixed outcomes are partial and not ok."""
        result = CascadeResult(
            app_id="slack",
            deleted=["a1"],
            failed=[FailedDeletion(id="a2", kind=ErrorKind.UPSTREAM_ERROR, message="timed out")],
        )
        assert result.total == 2
        assert result.ok is False
        assert result.partial is True
        assert result.summary() == "1 of 2 deleted, 1 failed"

    def test_all_ok(self):
        """No failures is ok and not partial."""
        result = CascadeResult(app_id="slack", deleted=["a1", "a2"])
        assert result.ok is True
        assert result.partial is False

    def test_serializes_derived_fields(self):
        """Derived fields are part of the JSON form."""
        dumped = CascadeResult(app_id="slack").model_dump(mode="json")
        assert dumped == {"app_id": "slack", "deleted": [], "failed": [], "total": 0, "ok": True, "partial": False}

    def test_failure_serializes_with_id(self):
        """Failed entries are keyed by the account id."""
        failure = FailedDeletion(id="a2", kind=ErrorKind.UPSTREAM_ERROR, message="timed out")
        assert failure.model_dump(mode="json") == {"id": "a2", "kind": "UpstreamError", "message": "timed out"}
