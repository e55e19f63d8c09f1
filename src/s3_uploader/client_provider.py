"""boto3 client creation and the worker pool blocking S3 calls run on."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict

import boto3
from botocore.config import Config

from .config import S3UploaderConfig

logger = logging.getLogger(__name__)


class S3ClientProvider:
    """Opens S3 clients for one configuration and runs their calls off the event loop.

    Each call to :meth:`open_client` returns a new client that the caller must
    release with :meth:`close_client`. botocore's connection pool, timeouts and
    retry policy are configured once here and shared by every client.
    """

    def __init__(self, config: S3UploaderConfig):
        self.config = config

        self._botocore_config = Config(
            region_name=config.region_name,
            retries={"max_attempts": config.max_attempts, "mode": config.retry_mode},
            max_pool_connections=config.max_pool_connections,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            signature_version="s3v4",
            s3={"addressing_style": "virtual"},
        )

        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="s3-uploader"
        )
        self._closed = False

        self._stats_lock = threading.Lock()
        self._stats = {
            "clients_opened": 0,
            "clients_closed": 0,
        }

    def open_client(self) -> Any:
        """Create a new S3 client with the configured credentials and endpoint."""
        session = boto3.Session(
            aws_access_key_id=self.config.aws_access_key_id,
            aws_secret_access_key=self.config.aws_secret_access_key,
            aws_session_token=self.config.aws_session_token,
            region_name=self.config.region_name,
        )

        client_kwargs: Dict[str, Any] = {"config": self._botocore_config}
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        client = session.client("s3", **client_kwargs)

        with self._stats_lock:
            self._stats["clients_opened"] += 1

        logger.debug(f"Opened S3 client for region {self.config.region_name}")
        return client

    def close_client(self, client: Any) -> None:
        """Release the client's HTTP connections."""
        try:
            client.close()
        finally:
            with self._stats_lock:
                self._stats["clients_closed"] += 1
            logger.debug("Closed S3 client")

    async def execute_async(
        self, func: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Any:
        """Execute a blocking S3 call on the worker pool."""
        loop = asyncio.get_running_loop()
        if kwargs:
            return await loop.run_in_executor(
                self._executor, lambda: func(*args, **kwargs)
            )
        return await loop.run_in_executor(self._executor, func, *args)

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = self._stats.copy()
        stats["open_clients"] = stats["clients_opened"] - stats["clients_closed"]
        return stats

    def close(self) -> None:
        """Shut down the worker pool."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        logger.info("S3 client provider closed")
