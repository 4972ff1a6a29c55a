"""Domain models for the connector gateway.

Platform payloads are parsed into these models at the gateway boundary
(``from_payload`` classmethods). A payload that does not fit raises
``ValueError`` (pydantic's ``ValidationError`` included); the Catalog and
Account Manager surface that as ``UpstreamError``.
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
    model_serializer,
    model_validator,
)

from connectgw.gateway.errors import ErrorKind, InvalidArgument
from connectgw.gateway.props import check_prop_graph

T = TypeVar("T")


# =============================================================================
# Tenant
# =============================================================================


class Tenant(BaseModel):
    """Opaque tenant identity: the external user id on the platform."""

    external_user_id: str

    model_config = ConfigDict(frozen=True)

    @field_validator("external_user_id", mode="before")
    @classmethod
    def _require_non_blank(cls, v: Any) -> str:
        # InvalidArgument is not a ValueError, so pydantic lets it through unwrapped
        if not isinstance(v, str) or not v.strip():
            raise InvalidArgument("Tenant identity (external_user_id) is required")
        return v.strip()

    def __str__(self) -> str:
        return self.external_user_id


# =============================================================================
# Apps and accounts
# =============================================================================


class ExternalApp(BaseModel):
    """An external service known to the platform (Slack, Google Sheets, ...)."""

    app_id: str
    slug: str
    display_name: str
    auth_type: Optional[str] = None
    description: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    img_src: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_payload(cls, payload: Mapping) -> "ExternalApp":
        """Parse the platform's ``{id, name_slug, name, ...}`` shape."""
        slug = payload.get("name_slug") or payload.get("slug")
        return cls(
            app_id=payload.get("id") or slug,
            slug=slug,
            display_name=payload.get("name") or slug,
            auth_type=payload.get("auth_type"),
            description=payload.get("description"),
            categories=payload.get("categories") or [],
            img_src=payload.get("img_src"),
        )

    def matches(self, app: str) -> bool:
        """True if ``app`` is this app's id or slug."""
        return app in (self.app_id, self.slug)


class ExternalAccount(BaseModel):
    """A tenant's linked credential set for one external app.

    A dead account is never healthy. When ``credentials`` is absent the
    serialized form has no ``credentials`` key at all.
    """

    account_id: str
    external_user_id: str
    app: ExternalApp
    name: Optional[str] = None
    healthy: bool = True
    dead: bool = False
    credentials: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _dead_is_unhealthy(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and data.get("dead"):
            data = dict(data)
            data["healthy"] = False
        return data

    @model_serializer(mode="wrap")
    def _drop_absent_credentials(self, handler):
        result = handler(self)
        if self.credentials is None:
            result.pop("credentials", None)
        return result

    @classmethod
    def from_payload(cls, payload: Mapping) -> "ExternalAccount":
        """Parse one account from the platform's shape."""
        return cls(
            account_id=payload["id"],
            external_user_id=payload.get("external_id") or payload.get("external_user_id"),
            app=ExternalApp.from_payload(payload["app"]),
            name=payload.get("name"),
            healthy=payload.get("healthy", True),
            dead=bool(payload.get("dead")),
            credentials=payload.get("credentials"),
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
        )

    def without_credentials(self) -> "ExternalAccount":
        """Copy of this account with the credentials blob removed."""
        if self.credentials is None:
            return self
        return self.model_copy(update={"credentials": None})


class ConnectToken(BaseModel):
    """Short-lived token that lets an end user link an account."""

    token: str
    expires_at: datetime
    external_user_id: str
    allowed_origins: Tuple[str, ...]
    connect_link_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_serializer("expires_at")
    def serialize_datetime(self, v: datetime) -> str:
        """Serialize datetime to ISO format."""
        return v.isoformat()


# =============================================================================
# Components
# =============================================================================


class ComponentType(str, Enum):
    """Kind of remote component."""

    ACTION = "action"
    TRIGGER = "trigger"

    @classmethod
    def coerce(cls, value: Any) -> "ComponentType":
        """Parse a component type, accepting plural forms ("actions")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized.endswith("s"):
                normalized = normalized[:-1]
            for member in cls:
                if member.value == normalized:
                    return member
        raise InvalidArgument(
            f"Invalid component type: {value!r} (expected 'action' or 'trigger')",
            {"component_type": str(value)},
        )


class PropKind(str, Enum):
    """Closed set of configurable prop types the platform defines."""

    STRING = "string"
    STRING_ARRAY = "string[]"
    INTEGER = "integer"
    INTEGER_ARRAY = "integer[]"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ANY = "any"
    APP = "app"
    HTTP_INTERFACE = "$.interface.http"
    TIMER_INTERFACE = "$.interface.timer"
    DB_SERVICE = "$.service.db"
    ALERT = "alert"
    DIR = "dir"
    SQL = "sql"


class PropDefinition(BaseModel):
    """One configurable field of a component."""

    name: str
    kind: PropKind
    label: Optional[str] = None
    description: Optional[str] = None
    required: bool = True
    depends_on: FrozenSet[str] = frozenset()
    options: Optional[List[Any]] = None
    remote_options: bool = False
    default: Any = None
    app: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_payload(cls, payload: Mapping) -> "PropDefinition":
        """Parse one entry of ``configurable_props``."""
        depends_on = payload.get("dependsOn") or payload.get("depends_on") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        return cls(
            name=payload["name"],
            kind=payload["type"],
            label=payload.get("label"),
            description=payload.get("description"),
            required=not payload.get("optional", False),
            depends_on=frozenset(depends_on),
            options=payload.get("options"),
            remote_options=bool(payload.get("remoteOptions", False)),
            default=payload.get("default"),
            app=payload.get("app"),
        )

    @field_serializer("depends_on")
    def serialize_depends_on(self, v: FrozenSet[str]) -> List[str]:
        """Serialize as a sorted list."""
        return sorted(v)


class ComponentSummary(BaseModel):
    """Listing entry for a component."""

    key: str
    name: str
    version: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping) -> "ComponentSummary":
        return cls(
            key=payload["key"],
            name=payload.get("name") or payload["key"],
            version=payload.get("version"),
            description=payload.get("description"),
        )


class Component(ComponentSummary):
    """Full component definition with its ordered props.

    Every ``depends_on`` must name another prop of the component and the
    dependency graph must be acyclic.
    """

    type: ComponentType
    app: Optional[str] = None
    props: Tuple[PropDefinition, ...] = ()

    @model_validator(mode="after")
    def _check_dependencies(self) -> "Component":
        check_prop_graph(self.props)
        return self

    @classmethod
    def from_payload(cls, component_type: ComponentType, payload: Mapping) -> "Component":
        """Parse a component definition (``{key, name, configurable_props, ...}``)."""
        props = tuple(PropDefinition.from_payload(p) for p in payload.get("configurable_props") or [])
        app = next((p.app for p in props if p.kind == PropKind.APP and p.app), None)
        return cls(
            key=payload["key"],
            name=payload.get("name") or payload["key"],
            version=payload.get("version"),
            description=payload.get("description"),
            type=component_type,
            app=app,
            props=props,
        )

    @property
    def prop_names(self) -> List[str]:
        return [p.name for p in self.props]

    def get_prop(self, name: str) -> Optional[PropDefinition]:
        """Look up a prop by name."""
        for prop in self.props:
            if prop.name == name:
                return prop
        return None


# =============================================================================
# Pagination
# =============================================================================


class Page(BaseModel, Generic[T]):
    """One page of results. ``next_cursor`` is None on the last page."""

    items: List[T] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    total_count: Optional[int] = None

    @staticmethod
    def cursor_from_payload(payload: Mapping) -> Optional[str]:
        """Cursor for the page after this one, None when this page is the last.

        The platform may cap a page below the requested limit, so a short
        page still continues at its end cursor. An empty page, a missing
        end cursor, or a page that holds all ``total_count`` items is last.
        """
        data = payload.get("data") or []
        page_info = payload.get("page_info") or {}
        end_cursor = page_info.get("end_cursor")
        total = page_info.get("total_count")
        if not data or not end_cursor:
            return None
        if total is not None and len(data) >= total:
            return None
        return end_cursor


async def walk_pages(fetch: Callable[[Optional[str]], Awaitable[Page[T]]]) -> AsyncIterator[T]:
    """Follow cursors from the first page until the last.

    Stops when a page has no cursor, when a cursor repeats, or once
    ``total_count`` items have been seen.
    """
    cursor: Optional[str] = None
    seen = 0
    while True:
        page = await fetch(cursor)
        for item in page.items:
            yield item
        seen += len(page.items)
        if page.next_cursor is None or page.next_cursor == cursor:
            return
        if page.total_count is not None and seen >= page.total_count:
            return
        cursor = page.next_cursor


# =============================================================================
# Configuration
# =============================================================================


class ConfigureRequest(BaseModel):
    """One dependent-field resolution call. Transient.

    ``configured_props`` is copied on construction; the caller's mapping
    is never touched.
    """

    component_key: str
    component_type: ComponentType
    external_user_id: str
    prop_name: str
    configured_props: Dict[str, Any]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _validate_inputs(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise InvalidArgument("Configure request must be a mapping")
        data = dict(data)

        for field in ("external_user_id", "component_key", "prop_name"):
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                raise InvalidArgument(f"{field} is required", {"field": field})
            data[field] = value.strip()

        data["component_type"] = ComponentType.coerce(data.get("component_type"))

        configured = data.get("configured_props")
        if not isinstance(configured, Mapping):
            raise InvalidArgument(
                "configured_props must be a mapping of prop name to value",
                {"field": "configured_props"},
            )
        data["configured_props"] = dict(configured)
        return data

    def has_value(self, prop_name: str) -> bool:
        """A prop has a value when its key is present and not None."""
        return self.configured_props.get(prop_name) is not None

    def to_payload(self) -> Dict[str, Any]:
        """Body for the platform's configure endpoint."""
        return {
            "external_user_id": self.external_user_id,
            "id": self.component_key,
            "prop_name": self.prop_name,
            "configured_props": dict(self.configured_props),
        }


class PropOption(BaseModel):
    """One selectable value for a prop."""

    label: str
    value: Any

    @classmethod
    def from_payload(cls, payload: Any) -> "PropOption":
        """Accept ``{label, value}``, ``{lv: {label, value}}`` or a bare value."""
        if isinstance(payload, Mapping):
            if "lv" in payload and isinstance(payload["lv"], Mapping):
                payload = payload["lv"]
            if "value" in payload:
                value = payload["value"]
                return cls(label=str(payload.get("label", value)), value=value)
        return cls(label=str(payload), value=payload)


class ConfigureResult(BaseModel):
    """Resolved options for one prop."""

    prop_name: str
    options: List[PropOption] = Field(default_factory=list)
    string_options: Optional[List[str]] = None
    observations: List[Any] = Field(default_factory=list)
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, prop_name: str, payload: Mapping) -> "ConfigureResult":
        return cls(
            prop_name=prop_name,
            options=[PropOption.from_payload(o) for o in payload.get("options") or []],
            string_options=payload.get("string_options") or payload.get("stringOptions"),
            observations=payload.get("observations") or [],
            context=payload.get("context"),
        )


# =============================================================================
# Cascade delete and proxy
# =============================================================================


class FailedDeletion(BaseModel):
    """One account the cascade could not delete."""

    id: str
    kind: ErrorKind
    message: str


class CascadeResult(BaseModel):
    """Aggregate outcome of deleting every account of one app."""

    app_id: str
    deleted: List[str] = Field(default_factory=list)
    failed: List[FailedDeletion] = Field(default_factory=list)

    @computed_field
    @property
    def total(self) -> int:
        return len(self.deleted) + len(self.failed)

    @computed_field
    @property
    def ok(self) -> bool:
        return not self.failed

    @computed_field
    @property
    def partial(self) -> bool:
        """Some deletes succeeded and some failed."""
        return bool(self.deleted) and bool(self.failed)

    def summary(self) -> str:
        return f"{len(self.deleted)} of {self.total} deleted, {len(self.failed)} failed"


class ProxyResponse(BaseModel):
    """Response of a request proxied through the platform."""

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
