"""Log sanitization utilities."""

import re

# key=value or "key": "value" pairs that carry credentials
_SECRET_PAIR_PATTERN = re.compile(
    r"""(?P<key>password|client_secret|security_token|access_token|refresh_token)"""
    r"""(?P<sep>["']?\s*[:=]\s*["']?)(?P<value>[^\s&"',}]+)""",
    re.IGNORECASE,
)

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._!\-]+")


def sanitize_error_message(message: str, secrets: list[str] | None = None) -> str:
    """Mask credentials in a message before it is logged.

    Masks:
    - Any literal value passed in ``secrets``
    - password/client_secret/token key-value pairs
    - Bearer tokens in Authorization headers

    Args:
        message: The raw message (often ``str(exception)``)
        secrets: Known secret values to mask verbatim

    Returns:
        The message with secrets replaced by ``***``
    """
    if not message:
        return message

    sanitized = message
    for secret in secrets or []:
        if secret:
            sanitized = sanitized.replace(secret, "***")

    sanitized = _SECRET_PAIR_PATTERN.sub(r"\g<key>\g<sep>***", sanitized)
    sanitized = _BEARER_PATTERN.sub(r"\1***", sanitized)

    # Remove control characters and newlines (prevent log injection)
    return re.sub(r"[\x00-\x08\x0a-\x1f\x7f]", "", sanitized)
