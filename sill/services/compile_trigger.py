"""
Out-of-band recomputation of the compiled data.

The full compilation (including enrichment from third-party sources) runs in
an external build, started by a GitHub ``repository_dispatch`` event. Its
result only reaches this process through the "data updated" signal handled
by the data API; nothing here waits for it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from sill.domain.github_utils import parse_github_repo_url

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
COMPILE_EVENT_TYPE = "compile-data"
DEFAULT_BUILD_REPOSITORY = "etalab/sill-api"
DEFAULT_INTERVAL_SECONDS = 4 * 60 * 60


class CompileTrigger:
    def __init__(
        self,
        data_repo_url: str,
        github_token: str,
        build_repository: str = DEFAULT_BUILD_REPOSITORY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repository = parse_github_repo_url(data_repo_url).repository
        self.build_repository = build_repository
        self._github_token = github_token
        self._transport = transport

    async def trigger(self) -> None:
        """Dispatch the compile event. Raises httpx.HTTPError on failure."""
        url = f"{GITHUB_API_URL}/repos/{self.build_repository}/dispatches"
        payload = {
            "event_type": COMPILE_EVENT_TYPE,
            "client_payload": {
                "repository": self.repository,
                "incremental": False,
            },
        }
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._github_token}",
        }

        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()

        logger.info(f"Dispatched {COMPILE_EVENT_TYPE} to {self.build_repository} for {self.repository}")


async def periodic_trigger_loop(trigger: CompileTrigger, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
    """
    Background task requesting a full compilation every ``interval_seconds``.
    Failures are logged and never surfaced.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        logger.info("Trigger computation of compiled data")
        try:
            await trigger.trigger()
        except Exception as e:
            logger.error(f"Error in periodic compile trigger: {e}")
