"""Test the main package."""

import s3_uploader


def test_version() -> None:
    """Test that version is defined."""
    assert hasattr(s3_uploader, "__version__")
    assert isinstance(s3_uploader.__version__, str)


def test_public_names_are_exported() -> None:
    for name in s3_uploader.__all__:
        assert hasattr(s3_uploader, name), name
