"""Account Lifecycle Manager.

Lists, fetches and deletes the external accounts a tenant has linked.
Every single-account operation is scoped to the tenant passed in: an
account owned by another tenant behaves exactly like one that does not
exist.

Cascade delete is project-wide: it enumerates every account bound to the
app, whichever user owns it. One delete per account runs with bounded
concurrency and the results are joined into a CascadeResult, so a caller
sees which accounts went and which did not.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel

from connectgw.config import Config
from connectgw.connectors.base import ConnectorError, PlatformConnector
from connectgw.gateway.dispatch import InFlight
from connectgw.gateway.errors import (
    ErrorKind,
    GatewayError,
    InvalidArgument,
    NotFound,
    platform_errors,
    translate_connector_error,
    unexpected_payload,
)
from connectgw.gateway.models import (
    CascadeResult,
    ExternalAccount,
    FailedDeletion,
    Page,
    Tenant,
    walk_pages,
)

logger = logging.getLogger(__name__)


class AccountFilter(BaseModel):
    """Filter for listing accounts. ``external_user_id`` defaults to the tenant."""

    app: Optional[str] = None
    oauth_app_id: Optional[str] = None
    external_user_id: Optional[str] = None
    include_credentials: bool = False


class AccountManager:
    """Account operations over the platform. All but cascade delete are tenant-scoped."""

    def __init__(
        self,
        platform: PlatformConnector,
        config: Config,
        in_flight: Optional[InFlight] = None,
    ):
        self.platform = platform
        self.config = config
        self.in_flight = in_flight if in_flight is not None else InFlight()

    # =========================================================================
    # Reads
    # =========================================================================

    async def _fetch_page(self, params: Dict[str, Any]) -> Page[ExternalAccount]:
        """One page of accounts as the platform returns them, unfiltered."""
        with platform_errors():
            payload = await self.platform.list_accounts(params)

        with unexpected_payload("account list"):
            return Page[ExternalAccount](
                items=[ExternalAccount.from_payload(item) for item in payload.get("data") or []],
                next_cursor=Page.cursor_from_payload(payload),
                total_count=(payload.get("page_info") or {}).get("total_count"),
            )

    async def list_page(
        self,
        tenant: Tenant,
        filters: Optional[AccountFilter] = None,
        cursor: Optional[str] = None,
    ) -> Page[ExternalAccount]:
        """Fetch one page of the tenant's accounts."""
        filters = filters or AccountFilter()
        if filters.external_user_id and filters.external_user_id != tenant.external_user_id:
            raise InvalidArgument(
                "external_user_id filter must match the calling tenant",
                {"external_user_id": filters.external_user_id},
            )

        page = await self._fetch_page(
            {
                "external_user_id": tenant.external_user_id,
                "app": filters.app,
                "oauth_app_id": filters.oauth_app_id,
                "include_credentials": filters.include_credentials,
                "limit": self.config.page_size,
                "after": cursor,
            }
        )

        items = []
        for account in page.items:
            if account.external_user_id != tenant.external_user_id:
                logger.warning(
                    f"Dropping account {account.account_id} owned by another user from listing"
                )
                continue
            items.append(account if filters.include_credentials else account.without_credentials())
        page.items = items
        return page

    def iter_accounts(
        self, tenant: Tenant, filters: Optional[AccountFilter] = None
    ) -> AsyncIterator[ExternalAccount]:
        """Yield every matching account, following cursors until exhausted."""
        return walk_pages(lambda cursor: self.list_page(tenant, filters, cursor))

    async def list_accounts(
        self, tenant: Tenant, filters: Optional[AccountFilter] = None
    ) -> List[ExternalAccount]:
        """All of the tenant's accounts matching the filters."""
        return [account async for account in self.iter_accounts(tenant, filters)]

    async def list_app_page(self, app_id: str, cursor: Optional[str] = None) -> Page[ExternalAccount]:
        """Fetch one page of every user's accounts for an app, without credentials.

        Project-wide: no user filter is sent. Only cascade delete reads
        accounts this way.
        """
        page = await self._fetch_page(
            {"app": app_id, "include_credentials": False, "limit": self.config.page_size, "after": cursor}
        )
        page.items = [account.without_credentials() for account in page.items]
        return page

    async def get_account(
        self, tenant: Tenant, account_id: str, include_credentials: bool = False
    ) -> ExternalAccount:
        """Fetch one account visible to the tenant.

        Raises:
            InvalidArgument: Empty account id
            NotFound: Unknown account, or one owned by another tenant
            UpstreamError: Platform failure
        """
        account_id = _require_id(account_id, "account_id")
        with platform_errors("account", account_id):
            payload = await self.platform.get_account(account_id, include_credentials)

        with unexpected_payload("account"):
            account = ExternalAccount.from_payload(payload.get("data", payload))

        if account.external_user_id != tenant.external_user_id:
            raise NotFound(
                f"Account '{account_id}' not found",
                {"resource": "account", "resource_id": account_id},
            )
        return account if include_credentials else account.without_credentials()

    # =========================================================================
    # Deletes
    # =========================================================================

    async def delete_account(self, tenant: Tenant, account_id: str) -> None:
        """Delete one of the tenant's accounts. Unknown or already gone is NotFound.

        A dispatched delete finishes even if the caller is cancelled.
        """
        account = await self.get_account(tenant, account_id)
        with platform_errors("account", account.account_id):
            await self.in_flight.run(self.platform.delete_account(account.account_id))
        logger.info(f"Deleted account {account.account_id} ({account.app.slug})")

    async def delete_all_accounts_for_app(self, tenant: Tenant, app_id: str) -> CascadeResult:
        """Delete every account bound to one app, across all users of the project.

        The tenant is the caller the cascade runs for; the accounts deleted
        are not limited to its own. Deletes run concurrently (at most
        ``cascade_concurrency`` at once), each bounded by
        ``request_timeout_s``. Individual failures are collected, not
        raised. If enumeration fails the error propagates.
        """
        app_id = _require_id(app_id, "app_id")
        account_ids = [
            account.account_id
            async for account in walk_pages(lambda cursor: self.list_app_page(app_id, cursor))
            if account.app.matches(app_id)
        ]
        result = CascadeResult(app_id=app_id)
        if not account_ids:
            logger.info(f"No accounts for app {app_id} to delete")
            return result

        logger.info(
            f"Cascade delete of {len(account_ids)} account(s) for app {app_id} "
            f"requested by {tenant.external_user_id}"
        )
        semaphore = asyncio.Semaphore(self.config.cascade_concurrency)
        outcomes = await asyncio.gather(
            *[self._delete_bounded(semaphore, account_id) for account_id in account_ids],
            return_exceptions=True,
        )

        for account_id, outcome in zip(account_ids, outcomes):
            if isinstance(outcome, BaseException):
                result.failed.append(self._failure(account_id, outcome))
            else:
                result.deleted.append(account_id)

        if result.failed:
            logger.warning(f"Cascade delete for app {app_id}: {result.summary()}")
        else:
            logger.info(f"Cascade delete for app {app_id}: {result.summary()}")
        return result

    async def _delete_bounded(self, semaphore: asyncio.Semaphore, account_id: str) -> None:
        """Delete one account once a slot is free.

        Deletes still waiting for a slot are skipped when the cascade is
        cancelled; dispatched ones run to completion.
        """
        async with semaphore:
            await self.in_flight.run(
                self.platform.delete_account(account_id),
                timeout=self.config.request_timeout_s,
            )

    def _failure(self, account_id: str, error: BaseException) -> FailedDeletion:
        """Classify one failed delete."""
        if isinstance(error, asyncio.TimeoutError):
            kind = ErrorKind.UPSTREAM_ERROR
            message = f"Delete timed out after {self.config.request_timeout_s}s"
        elif isinstance(error, ConnectorError):
            translated = translate_connector_error(error, "account", account_id)
            kind, message = translated.kind, translated.message
        elif isinstance(error, GatewayError):
            kind, message = error.kind, error.message
        else:
            logger.error(f"Unexpected error deleting account {account_id}", exc_info=error)
            kind, message = ErrorKind.INTERNAL, f"{type(error).__name__}: {error}"
        return FailedDeletion(id=account_id, kind=kind, message=message)

    async def delete_external_user(self, tenant: Tenant, user_id: str) -> None:
        """Delete the tenant's platform user and all of its accounts.

        A tenant can only delete itself; any other id is NotFound.
        """
        user_id = _require_id(user_id, "user_id")
        if user_id != tenant.external_user_id:
            raise NotFound(
                f"External user '{user_id}' not found",
                {"resource": "external_user", "resource_id": user_id},
            )
        with platform_errors("external user", user_id):
            await self.in_flight.run(self.platform.delete_external_user(user_id))
        logger.info("Deleted external user and its accounts")


def _require_id(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{field} is required", {"field": field})
    return value.strip()
