"""
Retrying remote fetcher.

Wraps another fetcher and re-issues a fetch that failed with
RetryableRemoteError, sleeping with exponential backoff between attempts.
CallableRemoteFetcher reports every error from a plain fetch function as
retryable, so a caller-supplied function gets retries without changes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from chunkstore.core.errors import RemoteFetchError, RetryableRemoteError
from chunkstore.infrastructure.remote import RemoteFetcherInterface

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Backoff settings for remote fetches.

    Attributes:
        max_retries: Extra attempts after the first one fails.
        base_delay: Seconds to wait before the first retry.
        max_delay: Upper bound on the wait between attempts.
        exponential_base: Growth factor of the wait per attempt.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry: int) -> float:
        """Seconds to sleep before retry number ``retry`` (0-based)."""
        return min(self.base_delay * self.exponential_base**retry, self.max_delay)


class RetryingRemoteFetcher(RemoteFetcherInterface):
    """
    Fetcher decorator that retries transient failures.

    RetryableRemoteError is retried up to ``max_retries`` times. Any other
    exception, NonRetryableRemoteError included, propagates on the attempt
    that raised it. When every attempt fails, RemoteFetchError is raised
    with the last error as its cause.
    """

    def __init__(self, inner: RemoteFetcherInterface, retry_config: Optional[RetryConfig] = None):
        self._inner = inner
        self._retry_config = retry_config or RetryConfig()

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    async def fetch(self, path: str) -> Any:
        config = self._retry_config
        retry = 0
        while True:
            try:
                return await self._inner.fetch(path)
            except RetryableRemoteError as e:
                if retry >= config.max_retries:
                    logger.error(f"Giving up on {path} after {config.attempts} attempts: {e}")
                    raise RemoteFetchError(
                        f"Fetching {path} failed after {config.attempts} attempts: {e}"
                    ) from e

                delay = config.delay_for(retry)
                retry += 1
                logger.warning(
                    f"Fetching {path} failed ({e}); retry {retry}/{config.max_retries} "
                    f"in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
