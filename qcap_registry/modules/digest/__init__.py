"""
Digest Module - Black Box Interface

Purpose: Content-addressed digests for capability payloads
Interface: content_digest()
Hidden: Hash algorithm details
"""

from blake3 import blake3

DIGEST_PREFIX = "blake3:"


def content_digest(data: bytes) -> str:
    """
    Digest bytes as a prefixed hex string.

    Example:
        >>> content_digest(b"abc")[:7]
        'blake3:'
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    hasher = blake3()
    hasher.update(data)
    return f"{DIGEST_PREFIX}{hasher.hexdigest()}"


__all__ = ["content_digest", "DIGEST_PREFIX"]
