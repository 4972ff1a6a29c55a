"""Component Catalog.

Lists and fetches remote component definitions (actions and triggers)
and the app catalog. Pagination uses the platform's opaque cursors; the
``iter_*`` variants walk every page and always restart from the first.
Nothing is cached.
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional

from connectgw.config import Config
from connectgw.connectors.base import PlatformConnector
from connectgw.gateway.errors import InvalidArgument, platform_errors, unexpected_payload
from connectgw.gateway.models import (
    Component,
    ComponentSummary,
    ComponentType,
    ExternalApp,
    Page,
    walk_pages,
)

logger = logging.getLogger(__name__)


class ComponentCatalog:
    """Read-only view of the platform's components and apps."""

    def __init__(self, platform: PlatformConnector, config: Config):
        self.platform = platform
        self.config = config

    def _limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.page_size
        if limit < 1:
            raise InvalidArgument("limit must be at least 1", {"limit": limit})
        return limit

    async def list_components(
        self,
        component_type: Any,
        app: Optional[str] = None,
        q: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Page[ComponentSummary]:
        """Fetch one page of component summaries of a type."""
        ctype = ComponentType.coerce(component_type)
        limit = self._limit(limit)
        params: Dict[str, Any] = {"app": app, "q": q, "after": cursor, "limit": limit}

        with platform_errors():
            payload = await self.platform.list_components(ctype.value, params)

        with unexpected_payload(f"{ctype.value} list"):
            return Page[ComponentSummary](
                items=[ComponentSummary.from_payload(item) for item in payload.get("data") or []],
                next_cursor=Page.cursor_from_payload(payload),
                total_count=(payload.get("page_info") or {}).get("total_count"),
            )

    def iter_components(
        self, component_type: Any, app: Optional[str] = None, q: Optional[str] = None
    ) -> AsyncIterator[ComponentSummary]:
        """Every component summary matching the filter, page by page."""
        ctype = ComponentType.coerce(component_type)
        return walk_pages(lambda cursor: self.list_components(ctype, app=app, q=q, cursor=cursor))

    async def get_component(self, component_type: Any, key: str) -> Component:
        """Fetch a full component definition.

        Raises:
            InvalidArgument: Bad component type or empty key
            NotFound: No component with that key under that type
            UpstreamError: Platform failure or a malformed definition
        """
        ctype = ComponentType.coerce(component_type)
        if not isinstance(key, str) or not key.strip():
            raise InvalidArgument("component key is required", {"field": "key"})
        key = key.strip()

        with platform_errors(ctype.value, key):
            payload = await self.platform.get_component(ctype.value, key)

        with unexpected_payload(f"{ctype.value} definition"):
            component = Component.from_payload(ctype, payload.get("data", payload))
        logger.debug(f"Loaded {ctype.value} {key} with {len(component.props)} props")
        return component

    async def list_apps(
        self,
        q: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Page[ExternalApp]:
        """Search one page of the app catalog."""
        limit = self._limit(limit)
        with platform_errors():
            payload = await self.platform.list_apps({"q": q, "after": cursor, "limit": limit})

        with unexpected_payload("app list"):
            return Page[ExternalApp](
                items=[ExternalApp.from_payload(item) for item in payload.get("data") or []],
                next_cursor=Page.cursor_from_payload(payload),
                total_count=(payload.get("page_info") or {}).get("total_count"),
            )

    def iter_apps(self, q: Optional[str] = None) -> AsyncIterator[ExternalApp]:
        """Every app matching the query, page by page."""
        return walk_pages(lambda cursor: self.list_apps(q=q, cursor=cursor))

