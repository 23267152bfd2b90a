"""Bounded concurrent download of crate sources into the corpus layout."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from contextlib import asynccontextmanager
from typing import IO, AsyncIterator, Iterable, Optional

import httpx

from .layout import CorpusLayout
from .models import ItemResult, ItemStatus, PackageId, StageReport
from .utils import ArchiveError, unpack_crate

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
USER_AGENT = "crate-corpus/0.1.0"
SPOOL_MAX_BYTES = 8 * 1024 * 1024


@asynccontextmanager
async def _build_client(
    client: httpx.AsyncClient | None, timeout: Optional[float]
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=timeout,
        follow_redirects=True,
    ) as created:
        yield created


class CrateFetcher:
    """Download and unpack source archives with at most ``concurrency`` requests in flight."""

    def __init__(
        self,
        layout: CorpusLayout,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: Optional[float] = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._layout = layout
        self._concurrency = max(1, concurrency)
        self._timeout = timeout
        self._client = client

    async def fetch_all(self, packages: Iterable[PackageId]) -> StageReport:
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks: list[asyncio.Task[ItemResult]] = []
        async with _build_client(self._client, self._timeout) as client:
            async with asyncio.TaskGroup() as group:
                for package in packages:
                    tasks.append(group.create_task(self._fetch(client, semaphore, package)))
        return StageReport("download", [task.result() for task in tasks])

    def run(self, packages: Iterable[PackageId]) -> StageReport:
        return asyncio.run(self.fetch_all(packages))

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        package: PackageId,
    ) -> ItemResult:
        if self._layout.has_workspace(package):
            logger.debug("Already downloaded: %s", package)
            return ItemResult(package, ItemStatus.SKIPPED, "workspace exists")

        url = self._layout.source_url(package)
        try:
            with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
                async with semaphore:
                    await self._download(client, url, spool)
                spool.seek(0)
                await asyncio.to_thread(self._unpack, package, spool)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPStatusError as exc:
            message = f"HTTP {exc.response.status_code} for {url}"
        except httpx.HTTPError as exc:
            message = f"Request for {url} failed: {exc!r}"
        except (ArchiveError, OSError) as exc:
            message = str(exc)
        except Exception as exc:  # pragma: no cover - per-item isolation
            message = f"Unexpected error: {exc!r}"
        else:
            logger.info("Untarred: %s", url)
            return ItemResult(package, ItemStatus.COMPLETED)

        logger.warning("Download failed for %s: %s", package, message)
        return ItemResult(package, ItemStatus.FAILED, message)

    async def _download(self, client: httpx.AsyncClient, url: str, sink: IO[bytes]) -> None:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                sink.write(chunk)

    def _unpack(self, package: PackageId, payload: IO[bytes]) -> None:
        unpack_crate(
            payload,
            self._layout.staging_path(package),
            str(package),
            self._layout.workspace_path(package),
        )
