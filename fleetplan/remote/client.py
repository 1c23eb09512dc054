"""Read-only Fleet REST client.

Only GET requests exist here, and nothing else is exposed: fleet-plan
must never be able to change the server it plans against.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable

import httpx

from fleetplan.config import check_url
from fleetplan.models.snapshot import (
    CatalogApp,
    RemoteGroup,
    RemoteLabel,
    RemotePolicy,
    RemoteProfile,
    RemoteQuery,
    RemoteSnapshot,
    SoftwareTitle,
)
from fleetplan.models.values import ConfigValue

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/fleet"
PAGE_SIZE = 250
MAX_PAGES = 100  # Endpoints that signal the last page by a short page
MAX_TITLE_PAGES = 400  # Endpoints that report meta.has_next_results
DEFAULT_TIMEOUT = 30.0
DEFAULT_CONCURRENCY = 5


class RemoteError(Exception):
    """The server state could not be fetched."""


class HTTPStatusError(RemoteError):
    """The server answered with a non-200 status."""

    def __init__(self, status_code: int, url: str, body: str = "") -> None:
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"HTTP {status_code} from {url}: {body}")


class FleetClient:
    """Async GET-only client.

    Use as an async context manager; ``fetch_snapshot`` assembles the full
    ``RemoteSnapshot`` the diff engine needs.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        base_url = base_url.rstrip("/")
        check_url(base_url)
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._limit = asyncio.Semaphore(concurrency)

    async def __aenter__(self) -> FleetClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = API_PREFIX + path
        async with self._limit:
            try:
                resp = await self._http.get(url, params=params)
            except httpx.HTTPError as exc:
                raise RemoteError(f"request to {url}: {exc}") from exc

        if resp.status_code != 200:
            raise HTTPStatusError(resp.status_code, str(resp.url), resp.text[:1024])
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteError(f"decoding response from {url}: {exc}") from exc

    async def _paginate(
        self,
        path: str,
        key: str,
        params: dict[str, Any] | None = None,
        *,
        has_next_meta: bool = False,
    ) -> list[dict]:
        """Collect every page of ``key``.

        Most endpoints end on a short page; the software endpoints report
        ``meta.has_next_results`` instead.
        """
        items: list[dict] = []
        max_pages = MAX_TITLE_PAGES if has_next_meta else MAX_PAGES
        for page in range(max_pages + 1):
            query = {"per_page": PAGE_SIZE, "page": page, **(params or {})}
            data = await self._get(path, query) or {}
            batch = data.get(key) or []
            items.extend(batch)
            if has_next_meta:
                meta = data.get("meta") or {}
                if not meta.get("has_next_results") or not batch:
                    break
            elif len(batch) < PAGE_SIZE:
                break
        else:
            logger.warning("stopped paginating %s after %d pages", path, max_pages + 1)
        return items

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_config(self) -> ConfigValue:
        data = await self._get("/config")
        return ConfigValue.from_raw(data if isinstance(data, dict) else {})

    async def get_teams(self) -> list[RemoteGroup]:
        return [RemoteGroup.from_dict(t) for t in await self._paginate("/teams", "teams")]

    async def get_policies(self, team_id: int = 0) -> list[RemotePolicy]:
        path = f"/teams/{team_id}/policies" if team_id else "/global/policies"
        return [RemotePolicy.from_dict(p) for p in await self._paginate(path, "policies")]

    async def get_queries(self, team_id: int = 0) -> list[RemoteQuery]:
        params = {"team_id": team_id} if team_id else None
        return [RemoteQuery.from_dict(q) for q in await self._paginate("/queries", "queries", params)]

    async def get_software_titles(self, team_id: int = 0) -> list[SoftwareTitle]:
        # available_for_install leaves out detected-only inventory
        params: dict[str, Any] = {"available_for_install": "true"}
        if team_id:
            params["team_id"] = team_id
        titles = await self._paginate("/software/titles", "software_titles", params, has_next_meta=True)
        return [SoftwareTitle.from_dict(t) for t in titles]

    async def get_vendor_catalog(self) -> list[CatalogApp]:
        """Fleet-maintained app catalog; empty when the endpoint is unavailable."""
        try:
            apps = await self._paginate(
                "/software/fleet_maintained_apps", "fleet_maintained_apps", has_next_meta=True
            )
        except HTTPStatusError as exc:
            # Older servers and restricted roles do not expose the catalog
            if exc.status_code not in (403, 404):
                raise
            logger.debug("fleet-maintained app catalog unavailable (HTTP %d)", exc.status_code)
            return []
        return [CatalogApp.from_dict(a) for a in apps]

    async def get_labels(self) -> list[RemoteLabel]:
        return [RemoteLabel.from_dict(lbl) for lbl in await self._paginate("/labels", "labels")]

    async def get_profiles(self, team_id: int = 0) -> list[RemoteProfile]:
        params: dict[str, Any] = {"per_page": PAGE_SIZE}
        if team_id:
            params["team_id"] = team_id
        data = await self._get("/mdm/profiles", params) or {}
        return [RemoteProfile.from_dict(p) for p in data.get("profiles") or []]

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def fetch_snapshot(self, fetch_global: bool = False) -> RemoteSnapshot:
        """Fetch everything the diff needs.

        Args:
            fetch_global: Also fetch server config and global policies and
                queries (only useful when a global declaration exists).
        """
        groups = await self.get_teams()
        labels = await self.get_labels()
        catalog = await self.get_vendor_catalog()
        snapshot = RemoteSnapshot(groups=groups, labels=labels, vendor_catalog=catalog)

        jobs: list[Awaitable[None]] = [self._fill_group(group) for group in groups]
        if fetch_global:
            jobs.append(self._fill_global(snapshot))
        await _gather_or_cancel(jobs)

        logger.debug("fetched %d teams, %d labels from %s", len(groups), len(labels), self.base_url)
        return snapshot

    async def _fill_group(self, group: RemoteGroup) -> None:
        group.policies, group.queries, group.profiles, group.software_titles = await _gather_or_cancel(
            [
                self.get_policies(group.id),
                self.get_queries(group.id),
                self.get_profiles(group.id),
                self.get_software_titles(group.id),
            ]
        )

    async def _fill_global(self, snapshot: RemoteSnapshot) -> None:
        snapshot.config, snapshot.global_policies, snapshot.global_queries = await _gather_or_cancel(
            [self.get_config(), self.get_policies(0), self.get_queries(0)]
        )


async def _gather_or_cancel(coros: Iterable[Awaitable[Any]]) -> list[Any]:
    """Like ``asyncio.gather`` but the first failure cancels the rest."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def fetch_snapshot(
    url: str,
    token: str,
    *,
    fetch_global: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RemoteSnapshot:
    """Synchronous entry point used by the CLI."""

    async def run() -> RemoteSnapshot:
        async with FleetClient(url, token, transport=transport) as client:
            return await client.fetch_snapshot(fetch_global=fetch_global)

    return asyncio.run(run())
