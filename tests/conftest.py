"""Shared test configuration and fixtures."""

import logging
import os
from typing import Any, Generator

import boto3
import pytest
from moto import mock_aws

from s3_uploader import S3Uploader, create_config
from s3_uploader.config import S3UploaderConfig
from tests.utils import TEST_BUCKET, TEST_REGION


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers and logging."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring real AWS resources"
    )
    config.addinivalue_line("markers", "unit: Fast unit tests")

    logging.basicConfig(
        level=logging.DEBUG if config.getoption("--verbose") else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def pytest_collection_modifyitems(config, items) -> None:  # type: ignore
    """Mark tests by the directory they live in."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_environment() -> Generator[None, None, None]:
    """Restore environment variables between tests."""
    original_env = os.environ.copy()
    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def aws_credentials() -> None:
    """Fake credentials so nothing can reach a real account."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = TEST_REGION


@pytest.fixture
def s3_config() -> S3UploaderConfig:
    return create_config(bucket_name=TEST_BUCKET, region_name=TEST_REGION)


@pytest.fixture
def small_chunk_config() -> S3UploaderConfig:
    """Config with tiny chunks so short payloads span several chunks."""
    return create_config(
        bucket_name=TEST_BUCKET, region_name=TEST_REGION, chunk_size=5
    )


@pytest.fixture
def mock_s3_setup(aws_credentials):
    """Mocked S3 with the test bucket already created."""
    with mock_aws():
        s3_client = boto3.client("s3", region_name=TEST_REGION)
        s3_client.create_bucket(Bucket=TEST_BUCKET)

        yield {
            "client": s3_client,
            "bucket_name": TEST_BUCKET,
            "region_name": TEST_REGION,
        }


@pytest.fixture
def uploader(mock_s3_setup, s3_config) -> Generator[S3Uploader, None, None]:
    """S3Uploader talking to the mocked bucket."""
    service = S3Uploader(s3_config)
    yield service
    service.close()
