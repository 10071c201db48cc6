"""Access tokens for public contract viewing and signing"""

import secrets

# 32 random bytes -> 256 bits of entropy, 43 URL-safe characters
TOKEN_BYTES = 32


def issue() -> str:
    """Generate an unguessable, URL-safe access token"""
    return secrets.token_urlsafe(TOKEN_BYTES)


def looks_like_token(value: str) -> bool:
    """Cheap shape check so obviously bogus tokens skip the database lookup"""
    if not value or len(value) > 64:
        return False
    return all(c.isalnum() or c in "-_" for c in value)
