"""Unit tests for key, metadata and bucket validation."""

import pytest

from s3_uploader import S3ValidationError
from s3_uploader.validation import KeyValidator, normalize_folder_path


@pytest.fixture
def validator() -> KeyValidator:
    return KeyValidator()


class TestObjectKeys:
    @pytest.mark.parametrize(
        "key",
        ["file.txt", "folder/sub/file.bin", "folder/", "ünïcödé/ファイル", "a" * 1024],
    )
    def test_valid_keys(self, validator, key) -> None:
        validator.validate_object_key(key)

    @pytest.mark.parametrize(
        "key", ["", None, 42, "bad\x00key", "tab\there", "é" * 513]
    )
    def test_invalid_keys(self, validator, key) -> None:
        with pytest.raises(S3ValidationError) as exc_info:
            validator.validate_object_key(key)
        assert exc_info.value.error_code == "InvalidObjectKey"


class TestMetadata:
    def test_none_and_empty_are_accepted(self, validator) -> None:
        validator.validate_metadata(None)
        validator.validate_metadata({})

    def test_valid_metadata(self, validator) -> None:
        validator.validate_metadata({"owner": "team-a", "purpose": "backup"})

    @pytest.mark.parametrize(
        "metadata",
        [
            {"": "value"},
            {"count": 3},
            {"big": "x" * 2048},
        ],
    )
    def test_invalid_metadata(self, validator, metadata) -> None:
        with pytest.raises(S3ValidationError) as exc_info:
            validator.validate_metadata(metadata)
        assert exc_info.value.error_code == "InvalidMetadata"


class TestBucketAndRegion:
    @pytest.mark.parametrize(
        "bucket_name", ["abc", "my-bucket", "my.bucket.name", "a" * 63, "bucket1"]
    )
    def test_valid_bucket_names(self, validator, bucket_name) -> None:
        validator.validate_bucket_and_region(bucket_name, "us-east-1")

    @pytest.mark.parametrize(
        "bucket_name",
        ["", "ab", "a" * 64, "-bucket", "bucket-", "my..bucket", "My_Bucket", "10.0.0.1"],
    )
    def test_invalid_bucket_names(self, validator, bucket_name) -> None:
        with pytest.raises(S3ValidationError):
            validator.validate_bucket_and_region(bucket_name, "us-east-1")

    @pytest.mark.parametrize(
        "region_name", ["us-east-1", "eu-west-2", "ap-southeast-2", "us-gov-west-1"]
    )
    def test_valid_regions(self, validator, region_name) -> None:
        validator.validate_bucket_and_region("my-bucket", region_name)

    @pytest.mark.parametrize("region_name", ["", None, "us_east_1", "east-1"])
    def test_invalid_regions(self, validator, region_name) -> None:
        with pytest.raises(S3ValidationError):
            validator.validate_bucket_and_region("my-bucket", region_name)

    def test_unknown_field_in_strict_mode(self, validator) -> None:
        assert validator.validate_field("colour", "blue") == ["Unknown field: colour"]
        assert KeyValidator(strict_mode=False).validate_field("colour", "blue") == []


@pytest.mark.parametrize(
    "path,expected",
    [("photos", "photos/"), ("photos/", "photos/"), ("a/b", "a/b/")],
)
def test_normalize_folder_path(path, expected) -> None:
    assert normalize_folder_path(path) == expected
