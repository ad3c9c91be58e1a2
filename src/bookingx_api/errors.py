# Error taxonomy.
# Created: 2026-02-20
#
# Expected failures (bad secret, expired code, PKCE mismatch...) travel as
# OAuthError values in (result, error) tuples. Only infrastructure failures
# are raised, as StorageError.

from __future__ import annotations

from enum import Enum


class OAuthError(str, Enum):
    """OAuth2-style error codes returned to callers."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    INVALID_SCOPE = "invalid_scope"
    INVALID_REDIRECT_URI = "invalid_redirect_uri"
    INVALID_TOKEN = "invalid_token"
    LOGIN_REQUIRED = "login_required"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVER_ERROR = "server_error"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self, 400)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.value, "error_description": self.description}


# Deliberately generic: never say *why* a credential was rejected.
_DESCRIPTIONS: dict[OAuthError, str] = {
    OAuthError.INVALID_REQUEST: "The request is missing a required parameter or is malformed.",
    OAuthError.INVALID_CLIENT: "Client authentication failed.",
    OAuthError.INVALID_GRANT: "The provided grant is invalid, expired, or already used.",
    OAuthError.UNAUTHORIZED_CLIENT: "The client is not allowed to use this grant type.",
    OAuthError.UNSUPPORTED_GRANT_TYPE: "Unsupported grant type.",
    OAuthError.UNSUPPORTED_RESPONSE_TYPE: "Unsupported response type.",
    OAuthError.INVALID_SCOPE: "The requested scope is invalid.",
    OAuthError.INVALID_REDIRECT_URI: "Invalid redirect URI.",
    OAuthError.INVALID_TOKEN: "Invalid or expired access token.",
    OAuthError.LOGIN_REQUIRED: "User authentication is required.",
    OAuthError.RATE_LIMIT_EXCEEDED: "Too many requests.",
    OAuthError.SERVER_ERROR: "Internal server error.",
}

_STATUS_CODES: dict[OAuthError, int] = {
    OAuthError.INVALID_CLIENT: 401,
    OAuthError.INVALID_TOKEN: 401,
    OAuthError.LOGIN_REQUIRED: 401,
    OAuthError.RATE_LIMIT_EXCEEDED: 429,
    OAuthError.SERVER_ERROR: 500,
}


class StorageError(Exception):
    """The credential store could not complete an operation."""
