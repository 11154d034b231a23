"""Generation of secrets handed to AWS, such as ElastiCache auth tokens."""

from __future__ import annotations

import secrets
import string
import uuid

from ..constants import IDEMPOTENCY_TOKEN_PREFIX

# ElastiCache rejects '@', '"' and '/' in auth tokens
AUTH_TOKEN_CHARACTERS = string.ascii_letters + string.digits + "!&#$^<>-"
AUTH_TOKEN_LENGTH = 64


def generate_auth_token(length: int = AUTH_TOKEN_LENGTH) -> str:
    """Generate a random auth token (about 6 bits of entropy per character)."""
    return "".join(secrets.choice(AUTH_TOKEN_CHARACTERS) for _ in range(length))


def generate_idempotency_token() -> str:
    """Generate a client token for AWS APIs that deduplicate retried requests."""
    return f"{IDEMPOTENCY_TOKEN_PREFIX}-{uuid.uuid4()}"
