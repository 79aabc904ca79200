"""Identity endpoint package."""

from spendy.services.identity.client import (
    PROFILE_PATH,
    UPDATE_PROFILE_PATH,
    IdentityClient,
    decode_auth_response,
    decode_profile,
)

__all__ = [
    "PROFILE_PATH",
    "UPDATE_PROFILE_PATH",
    "IdentityClient",
    "decode_auth_response",
    "decode_profile",
]
