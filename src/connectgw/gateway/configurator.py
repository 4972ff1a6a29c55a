"""Component Configurator: dependent-field resolution.

A prop's options can only be computed once every prop it depends on has
a value. Each ``configure`` call resolves exactly one prop:

1. the request is validated locally (ConfigureRequest)
2. the component definition is fetched from the catalog
3. every unmet dependency, direct or transitive, is reported at once
4. the platform resolves the prop's options from the configured values

Calls are never retried here; the caller decides.
"""

import logging
from typing import Any, List, Mapping, Optional

from connectgw.connectors.base import PlatformConnector
from connectgw.gateway.dispatch import InFlight
from connectgw.gateway.catalog import ComponentCatalog
from connectgw.gateway.errors import (
    InvalidArgument,
    MissingDependency,
    UpstreamError,
    platform_errors,
    unexpected_payload,
)
from connectgw.gateway.models import (
    Component,
    ConfigureRequest,
    ConfigureResult,
    Tenant,
)
from connectgw.gateway.props import resolution_order, unmet_dependencies

logger = logging.getLogger(__name__)


class ComponentConfigurator:
    """Runs one resolution step at a time for a tenant."""

    def __init__(
        self,
        platform: PlatformConnector,
        catalog: ComponentCatalog,
        in_flight: Optional[InFlight] = None,
    ):
        self.platform = platform
        self.catalog = catalog
        self.in_flight = in_flight if in_flight is not None else InFlight()

    async def configure(self, tenant: Tenant, request: ConfigureRequest) -> ConfigureResult:
        """Resolve the options of ``request.prop_name``.

        Raises:
            InvalidArgument: Request for another tenant, or unknown prop
            NotFound: Component does not exist
            MissingDependency: Some dependencies of the prop have no value
            UpstreamError: Platform failure or platform-reported errors
        """
        if request.external_user_id != tenant.external_user_id:
            raise InvalidArgument("Configure request must be made for the calling tenant")

        component = await self.catalog.get_component(request.component_type, request.component_key)
        self.check_dependencies(component, request.prop_name, request.configured_props)

        with platform_errors(request.component_type.value, request.component_key):
            payload = await self.in_flight.run(
                self.platform.configure_prop(request.component_type.value, request.to_payload())
            )

        if payload is None:
            payload = {}
        errors = payload.get("errors") if isinstance(payload, Mapping) else None
        if errors:
            messages = [str(e) for e in errors]
            raise UpstreamError(
                f"Platform rejected configuration of '{request.prop_name}': {'; '.join(messages)}",
                {"errors": messages, "prop_name": request.prop_name},
            )

        with unexpected_payload("configure"):
            result = ConfigureResult.from_payload(request.prop_name, payload)
        logger.debug(
            f"Resolved {len(result.options)} option(s) for {request.component_key}.{request.prop_name}"
        )
        return result

    @staticmethod
    def check_dependencies(
        component: Component, prop_name: str, configured_props: Mapping[str, Any]
    ) -> None:
        """Raise unless every dependency of ``prop_name`` has a value."""
        if component.get_prop(prop_name) is None:
            raise InvalidArgument(
                f"Component '{component.key}' has no prop '{prop_name}'",
                {"prop_name": prop_name, "available": component.prop_names},
            )
        missing = unmet_dependencies(component, prop_name, configured_props)
        if missing:
            raise MissingDependency(prop_name, missing)

    @staticmethod
    def next_props(component: Component, configured_props: Mapping[str, Any]) -> List[str]:
        """Props without a value whose dependencies are all satisfied."""
        ready = []
        for stage in resolution_order(component):
            for name in stage:
                if configured_props.get(name) is not None:
                    continue
                if not unmet_dependencies(component, name, configured_props):
                    ready.append(name)
        return ready

    @staticmethod
    def build_request(
        tenant: Tenant,
        component_type: Any,
        component_key: Optional[str],
        prop_name: Optional[str],
        configured_props: Any,
    ) -> ConfigureRequest:
        """Validate raw inputs into a ConfigureRequest (InvalidArgument on failure)."""
        return ConfigureRequest.model_validate({
            "component_key": component_key,
            "component_type": component_type,
            "external_user_id": tenant.external_user_id,
            "prop_name": prop_name,
            "configured_props": configured_props,
        })
