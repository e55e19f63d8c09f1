"""Input validation for S3 keys, metadata and configuration values."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .exceptions import S3ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ValidationRule:
    """Individual validation rule definition."""

    name: str
    validator: Callable[[Any], bool]
    error_message: str
    is_critical: bool = True


class KeyValidator:
    """Validates object keys, metadata and bucket/region names before use."""

    # S3 constraints
    MAX_OBJECT_KEY_BYTES = 1024
    MAX_METADATA_BYTES = 2048
    MIN_BUCKET_NAME_LENGTH = 3
    MAX_BUCKET_NAME_LENGTH = 63

    CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")
    BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")
    IP_ADDRESS_PATTERN = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
    REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")

    def __init__(self, strict_mode: bool = True):
        self.strict_mode = strict_mode
        self.validation_rules = self._build_validation_rules()

    def _build_validation_rules(self) -> Dict[str, List[ValidationRule]]:
        return {
            "object_key": [
                ValidationRule(
                    "type",
                    lambda x: isinstance(x, str),
                    "Object key must be a string",
                ),
                ValidationRule(
                    "not_empty",
                    lambda x: len(x) > 0,
                    "Object key cannot be empty",
                ),
                ValidationRule(
                    "length",
                    lambda x: len(x.encode("utf-8")) <= self.MAX_OBJECT_KEY_BYTES,
                    f"Object key exceeds {self.MAX_OBJECT_KEY_BYTES} bytes",
                ),
                ValidationRule(
                    "no_control_characters",
                    lambda x: not self.CONTROL_CHARACTERS.search(x),
                    "Object key contains control characters",
                ),
            ],
            "bucket_name": [
                ValidationRule(
                    "not_blank",
                    lambda x: isinstance(x, str) and x.strip() != "",
                    "Bucket name must be specified",
                ),
                ValidationRule(
                    "length",
                    lambda x: self.MIN_BUCKET_NAME_LENGTH
                    <= len(x)
                    <= self.MAX_BUCKET_NAME_LENGTH,
                    f"Bucket name must be {self.MIN_BUCKET_NAME_LENGTH}-"
                    f"{self.MAX_BUCKET_NAME_LENGTH} characters",
                ),
                ValidationRule(
                    "pattern",
                    lambda x: bool(self.BUCKET_NAME_PATTERN.match(x))
                    and ".." not in x,
                    "Bucket name may only contain lowercase letters, digits, "
                    "dots and hyphens",
                ),
                ValidationRule(
                    "not_ip_address",
                    lambda x: not self.IP_ADDRESS_PATTERN.match(x),
                    "Bucket name cannot be formatted as an IP address",
                ),
            ],
            "region_name": [
                ValidationRule(
                    "pattern",
                    lambda x: isinstance(x, str)
                    and bool(self.REGION_PATTERN.match(x)),
                    "Region name is malformed",
                ),
            ],
        }

    def validate_field(self, field_name: str, value: Any) -> List[str]:
        """Validate a single field and return list of error messages."""
        errors = []

        if field_name not in self.validation_rules:
            if self.strict_mode:
                errors.append(f"Unknown field: {field_name}")
            return errors

        for rule in self.validation_rules[field_name]:
            try:
                if not rule.validator(value):
                    errors.append(rule.error_message)
                    if rule.is_critical and self.strict_mode:
                        break
            except Exception as e:
                logger.warning(f"Validation rule {rule.name} failed: {e}")
                errors.append(
                    f"Validation error for {field_name}: {rule.error_message}"
                )
                break

        return errors

    def validate_object_key(self, key: Any) -> None:
        """Raise S3ValidationError if ``key`` is not a usable object key."""
        errors = self.validate_field("object_key", key)
        if errors:
            raise S3ValidationError(
                message=f"Invalid object key: {'; '.join(errors)}",
                error_code="InvalidObjectKey",
                context={"object_key": str(key), "errors": errors},
            )

    def validate_metadata(self, metadata: Optional[Mapping[str, str]]) -> None:
        """Check user metadata types and the S3 2 KiB header budget."""
        if not metadata:
            return

        errors = []
        total_size = 0
        for name, value in metadata.items():
            if not isinstance(name, str) or not isinstance(value, str):
                errors.append(f"Metadata entry {name!r} must map str to str")
                continue
            if not name:
                errors.append("Metadata names cannot be empty")
            total_size += len(name.encode("utf-8")) + len(value.encode("utf-8"))

        if total_size > self.MAX_METADATA_BYTES:
            errors.append(
                f"Metadata size ({total_size}) exceeds maximum "
                f"({self.MAX_METADATA_BYTES})"
            )

        if errors:
            raise S3ValidationError(
                message=f"Metadata validation failed: {'; '.join(errors)}",
                error_code="InvalidMetadata",
                context={"metadata_size": total_size, "errors": errors},
            )

    def validate_bucket_and_region(self, bucket_name: Any, region_name: Any) -> None:
        all_errors = self.validate_field("bucket_name", bucket_name)
        all_errors.extend(self.validate_field("region_name", region_name))

        if all_errors:
            raise S3ValidationError(
                message=f"Validation failed: {'; '.join(all_errors)}",
                error_code="ValidationFailed",
                context={
                    "bucket_name": str(bucket_name),
                    "region_name": str(region_name),
                    "errors": all_errors,
                },
            )


def normalize_folder_path(folder_path: str) -> str:
    """Return ``folder_path`` ending in a slash."""
    return folder_path if folder_path.endswith("/") else f"{folder_path}/"


# Global validator instance
_global_validator: Optional[KeyValidator] = None


def get_validator(strict_mode: bool = True) -> KeyValidator:
    """Get global validator instance."""
    global _global_validator
    if _global_validator is None:
        _global_validator = KeyValidator(strict_mode=strict_mode)
    return _global_validator
