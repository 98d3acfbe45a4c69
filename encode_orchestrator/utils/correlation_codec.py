"""
Encoding and decoding of correlation data.

The remote encoding service returns no user-defined field on a job. The only
free-text field that is visible on every later read of the job, and in every
notification, is the name of the job's first task. The orchestrator therefore uses
that name as its only durable storage: the caller's context is serialized to JSON,
transformed into URL-safe base64 without padding, and placed verbatim into the task
name when the job is submitted. When a notification arrives, the task name is read
back and decoded.

The task name is limited to `MAX_CORRELATION_DATA_LENGTH` characters, so encoding
fails fast when the data does not fit.
"""
import base64
import binascii
import json
import re
from typing import Dict, Mapping, Optional

from ..config.common import MAX_CORRELATION_DATA_LENGTH
from ..domain.exceptions import ValidationError

# The URL-safe alphabet, optionally followed by the padding `encode()` strips.
_BASE64URL = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def encode(
    correlation_data: Optional[Mapping[str, str]],
    max_length: int = MAX_CORRELATION_DATA_LENGTH,
) -> str:
    """
    Serializes a string-to-string mapping into a compact, URL-safe string.

    Args:
        correlation_data: The mapping to encode. `None` is encoded as JSON `null`
                          and decodes back to an empty mapping.
        max_length: The maximum length of the encoded string.

    Returns:
        The base64url (unpadded) encoding of the mapping's JSON form.

    Raises:
        ValidationError: If a key or value is not a string, or if the encoded form
                         is longer than `max_length`.
    """
    if correlation_data is not None:
        for key, value in correlation_data.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValidationError(
                    f"Correlation data must map strings to strings, got {key!r}: {type(value).__name__}."
                )
        correlation_data = dict(correlation_data)

    json_text = json.dumps(correlation_data, separators=(",", ":"), ensure_ascii=False)
    encoded = base64.urlsafe_b64encode(json_text.encode("utf-8")).decode("ascii").rstrip("=")

    if len(encoded) > max_length:
        raise ValidationError(
            f"Encoded correlation data is {len(encoded)} characters long, larger than {max_length}."
        )
    return encoded


def decode(encoded: str) -> Dict[str, str]:
    """
    Restores the mapping produced by `encode()`.

    Raises:
        ValidationError: If the text is not valid base64url, not UTF-8 JSON, or the
                         JSON is not an object of string values.
    """
    if not isinstance(encoded, str):
        raise ValidationError(f"Encoded correlation data must be a string, got {type(encoded).__name__}.")

    text = encoded.strip()
    if not _BASE64URL.fullmatch(text):
        raise ValidationError("Correlation data is malformed: not base64url text.")
    padding = "=" * (-len(text) % 4)
    try:
        raw = base64.b64decode((text + padding).encode("ascii"), altchars=b"-_", validate=True)
        parsed = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError(f"Correlation data is malformed: {e}") from e

    if parsed is None:
        return {}
    if not isinstance(parsed, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in parsed.items()
    ):
        raise ValidationError("Correlation data must decode to an object of string values.")
    return parsed
