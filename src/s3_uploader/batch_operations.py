"""Batched and concurrent multi-object operations."""

import asyncio
import logging
from typing import Any, Dict, List, Sequence

from .client_provider import S3ClientProvider

logger = logging.getLogger(__name__)

# S3 accepts at most 1000 keys per DeleteObjects request
DELETE_BATCH_SIZE = 1000


class S3BatchOperations:
    """Multi-object operations for one bucket, run against a caller-owned client."""

    def __init__(
        self,
        client_provider: S3ClientProvider,
        bucket_name: str,
        max_concurrent: int = 10,
    ):
        self.client_provider = client_provider
        self.bucket_name = bucket_name
        self.max_concurrent = max_concurrent

    async def batch_delete(
        self, s3_client: Any, object_keys: Sequence[str]
    ) -> Dict[str, List[Any]]:
        """Delete objects in batches of 1000.

        Returns ``{"deleted": [key, ...], "errors": [{"key", "error"}, ...]}``.
        A batch that fails as a whole reports every key in it as an error.
        """
        results: Dict[str, List[Any]] = {"deleted": [], "errors": []}
        if not object_keys:
            return results

        for i in range(0, len(object_keys), DELETE_BATCH_SIZE):
            batch = list(object_keys[i : i + DELETE_BATCH_SIZE])

            try:
                await self._delete_batch(s3_client, batch, results)
            except Exception as e:
                logger.error(
                    f"Batch delete failed for batch starting at index {i}: {e}"
                )
                for key in batch:
                    results["errors"].append({"key": key, "error": str(e)})

        return results

    async def _delete_batch(
        self, s3_client: Any, object_keys: List[str], results: Dict[str, List[Any]]
    ) -> None:
        delete_request = {
            "Objects": [{"Key": key} for key in object_keys],
            "Quiet": False,  # Return both successful and failed deletes
        }

        response = await self.client_provider.execute_async(
            s3_client.delete_objects, Bucket=self.bucket_name, Delete=delete_request
        )

        for deleted in response.get("Deleted", []):
            results["deleted"].append(deleted["Key"])

        for error in response.get("Errors", []):
            results["errors"].append(
                {
                    "key": error["Key"],
                    "error": f"{error['Code']}: {error['Message']}",
                }
            )

    async def batch_put_acl(
        self, s3_client: Any, object_keys: Sequence[str], acl: str
    ) -> Dict[str, List[Any]]:
        """Apply a canned ACL to each key with bounded concurrency."""
        results: Dict[str, List[Any]] = {"updated": [], "errors": []}
        if not object_keys:
            return results

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _put_acl(key: str) -> None:
            async with semaphore:
                try:
                    await self.client_provider.execute_async(
                        s3_client.put_object_acl,
                        Bucket=self.bucket_name,
                        Key=key,
                        ACL=acl,
                    )
                    results["updated"].append(key)
                except Exception as e:
                    logger.error(f"Setting ACL {acl} failed for {key}: {e}")
                    results["errors"].append({"key": key, "error": str(e)})

        await asyncio.gather(*(_put_acl(key) for key in object_keys))
        return results
