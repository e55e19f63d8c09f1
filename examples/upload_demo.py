#!/usr/bin/env python3
"""
Demonstration of S3 uploads with progress reporting.

This script demonstrates:
1. Streaming a local file with a percentage progress display
2. Folder creation, listing and cleanup
3. Renaming an object and toggling its ACL

Usage:
    Create examples/.env (or export the variables) with:
    S3_BUCKET_NAME=your-test-bucket
    AWS_REGION=us-east-1
    python examples/upload_demo.py [path/to/file]
"""

import asyncio
import logging
import os
import sys
import tempfile
from pathlib import Path

# Add the src directory to the path so we can import our package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from s3_uploader import (  # noqa: E402
    Completed,
    Failed,
    S3Uploader,
    S3ValidationError,
    load_config_from_env,
    on_progress_changed,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _print_percentage(percentage: int) -> None:
    print(f"\r   Uploading... {percentage:3d}%", end="", flush=True)


async def demonstrate_uploads(file_path: Path) -> None:
    try:
        config = load_config_from_env(Path(__file__).parent / ".env")
    except S3ValidationError as e:
        print(f"Error loading configuration: {e}")
        print("Please set S3_BUCKET_NAME and AWS_REGION")
        return

    print(f"Using {config!r}")
    folder = "upload-demo"
    key = f"{folder}/{file_path.name}"

    async with S3Uploader(config) as uploader:
        # 1. Streaming upload with progress
        print(f"\n1. Uploading {file_path} ({file_path.stat().st_size} bytes)")
        with open(file_path, "rb") as source:
            progress = uploader.upload_with_progress(
                source, file_path.stat().st_size, key, "application/octet-stream"
            )
            async for update in on_progress_changed(progress, _print_percentage):
                if isinstance(update, Completed):
                    print(f"\n   Done, ETag {update.entity_tag}")
                elif isinstance(update, Failed):
                    print(f"\n   Upload failed: {update.cause}")
                    return

        # 2. Folder operations
        print("\n2. Folder operations")
        await uploader.create_folder(f"{folder}/notes")
        await uploader.upload_text("Remember the milk", f"{folder}/notes/todo.txt")
        async for obj in uploader.list_folder(folder):
            print(f"   {obj['Key']} ({obj['Size']} bytes)")

        # 3. Rename and ACL
        print("\n3. Rename and ACL")
        renamed_key = f"{folder}/renamed-{file_path.name}"
        result = await uploader.rename_object(key, renamed_key)
        print(f"   {result.message}")
        result = await uploader.make_public(renamed_key)
        print(f"   {result.message}")
        if result.success:
            print(f"   URL: {uploader.get_public_object_url(renamed_key)}")

        # Cleanup
        print("\nCleaning up...")
        result = await uploader.delete_folder(folder)
        print(f"   Deleted {result.deleted_count} objects")


def main() -> None:
    if len(sys.argv) > 1:
        asyncio.run(demonstrate_uploads(Path(sys.argv[1])))
        return

    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as handle:
        handle.write(os.urandom(5 * 1024 * 1024))
    try:
        asyncio.run(demonstrate_uploads(Path(handle.name)))
    finally:
        os.unlink(handle.name)


if __name__ == "__main__":
    main()
