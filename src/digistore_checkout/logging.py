"""
Logging helpers with sensitive data masking.

Gift card codes are bearer instruments and buyer emails are personal data,
so neither may reach a log record in clear text.

Usage:
    import logging
    from digistore_checkout.logging import mask_code, mask_sensitive_data

    logger = logging.getLogger(__name__)
    logger.info("Gift card applied: %s", mask_code(code))
    logger.debug("Request body: %s", mask_sensitive_data(payload))
"""
from __future__ import annotations

import re
from typing import Any, Optional, Sequence

MASK_PATTERN = "***"
MAX_LOG_MESSAGE_LENGTH = 2000

SENSITIVE_FIELDS = frozenset({
    "password",
    "token",
    "access_token",
    "accessToken",
    "refresh_token",
    "refreshToken",
    "authorization",
    "giftCardCode",
    "gift_card_code",
    "code",
    "email",
    "buyerEmail",
})


def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a value, showing only the first and last ``show_chars`` characters."""
    if not value or len(value) <= show_chars * 2:
        return MASK_PATTERN
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def mask_code(code: Optional[str]) -> str:
    """Mask a coupon or gift card code, keeping the last four characters."""
    if not code:
        return MASK_PATTERN
    if len(code) <= 4:
        return MASK_PATTERN
    return f"{MASK_PATTERN}{code[-4:]}"


def mask_email(email: Optional[str]) -> str:
    """Mask the local part of an email address: ``j***@example.com``."""
    if not email or "@" not in email:
        return MASK_PATTERN
    local, _, domain = email.partition("@")
    return f"{local[:1]}{MASK_PATTERN}@{domain}"


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower().replace("-", "_")
    return key in SENSITIVE_FIELDS or key_lower in SENSITIVE_FIELDS or any(
        sensitive in key_lower
        for sensitive in ("secret", "password", "token", "credential", "auth")
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive values in a request or response body.

    Returns a copy; the input is not modified.
    """
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)) or (additional_fields and key in additional_fields):
                if isinstance(value, str) and "email" in str(key).lower():
                    result[key] = mask_email(value)
                else:
                    result[key] = mask_code(value) if isinstance(value, str) else MASK_PATTERN
            else:
                result[key] = mask_sensitive_data(value, additional_fields, _depth + 1, _max_depth)
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, _depth + 1, _max_depth)
            for item in data
        )

    if isinstance(data, str):
        return _mask_inline_patterns(data)

    return data


def _mask_inline_patterns(text: str) -> str:
    if len(text) > MAX_LOG_MESSAGE_LENGTH:
        text = text[:MAX_LOG_MESSAGE_LENGTH] + "...[truncated]"

    patterns = [
        (r'(Bearer\s+)[a-zA-Z0-9._-]+', r'\1***'),
        (r'\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\b', '***JWT***'),
        # Gift card codes: XXXX-XXXX-XXXX-XXXX
        (r'\b[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-([A-Z0-9]{4})\b', r'***\1'),
    ]
    for pattern, replacement in patterns:
        text = re.sub(pattern, replacement, text)
    return text
