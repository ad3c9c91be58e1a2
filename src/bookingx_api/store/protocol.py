"""Credential store protocol.

Created: 2026-02-20
Defines the persistence contract shared by the API key authenticator, the
authorization code issuer, the token lifecycle manager and the rate limiter.

Methods that gate security decisions are atomic at the storage layer:

- ``consume_auth_code`` and ``find_and_delete_refresh_token`` find and delete
  in one statement, so a code or refresh token is never both consumed and
  still valid.
- ``increment_rate_counter`` is a single upsert-and-increment.
- ``atomic()`` groups several calls into one transaction; the token grants
  use it so a consumed code or refresh token and the tokens issued for it
  are committed together.

Raw code/token values are passed in; implementations decide how they are
stored (the SQL store keeps SHA-256 digests only).
"""

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from bookingx_api.store.models import (
    AccessToken,
    APIKey,
    AuthorizationCode,
    OAuthClient,
    RefreshToken,
)


@runtime_checkable
class CredentialStoreProtocol(Protocol):
    """Protocol defining the interface for credential storage backends."""

    def atomic(self) -> AbstractContextManager[None]:
        """Context manager: all calls inside share one transaction.

        An exception leaving the block rolls every one of them back.
        """
        ...

    # =========================================================================
    # Clients
    # =========================================================================

    def get_client(self, client_id: str) -> OAuthClient | None:
        """Get a client by its public id, active or not."""
        ...

    def save_client(self, client: OAuthClient) -> OAuthClient:
        """Insert or update a client."""
        ...

    def list_clients(self, user_id: str | None = None) -> list[OAuthClient]: ...

    # =========================================================================
    # Authorization codes
    # =========================================================================

    def create_auth_code(
        self,
        code: str,
        client_id: str,
        user_id: str,
        redirect_uri: str,
        scope: str,
        code_challenge: str | None,
        code_challenge_method: str | None,
        expires_at: int,
    ) -> AuthorizationCode: ...

    def consume_auth_code(self, code: str, client_id: str) -> AuthorizationCode | None:
        """Atomically delete and return a code issued to *client_id*.

        Returns None when the code does not exist, belongs to another client
        or has expired.
        """
        ...

    # =========================================================================
    # Access and refresh tokens
    # =========================================================================

    def create_access_token(
        self, token: str, client_id: str, user_id: str | None, scope: str, expires_at: int
    ) -> AccessToken: ...

    def find_access_token(self, token: str) -> AccessToken | None:
        """Return the token if it exists and has not expired."""
        ...

    def delete_access_token(self, token: str) -> bool: ...

    def create_refresh_token(
        self, token: str, client_id: str, user_id: str | None, scope: str, expires_at: int
    ) -> RefreshToken: ...

    def find_refresh_token(self, token: str) -> RefreshToken | None:
        """Return the refresh token if it exists and has not expired."""
        ...

    def find_and_delete_refresh_token(self, token: str, client_id: str) -> RefreshToken | None:
        """Atomically delete and return an unexpired refresh token of *client_id*."""
        ...

    def delete_refresh_token(self, token: str) -> bool: ...

    # =========================================================================
    # API keys
    # =========================================================================

    def save_api_key(self, key: APIKey) -> APIKey: ...

    def find_api_key(self, key_id: str) -> APIKey | None: ...

    def list_api_keys(self, user_id: str | None = None) -> list[APIKey]: ...

    def touch_api_key_usage(self, key_id: str, origin: str | None) -> None:
        """Record last-used time and network origin."""
        ...

    # =========================================================================
    # Rate limiting
    # =========================================================================

    def get_rate_count(self, identifier: str, endpoint: str, window_start: int) -> int: ...

    def increment_rate_counter(
        self, identifier: str, endpoint: str, window_start: int, limit: int | None = None
    ) -> int | None:
        """Atomically add one request to the window and return the new count.

        With *limit*, the increment only happens while the count is below it;
        None is returned when the window is already full.
        """
        ...

    def get_custom_rate_limit(self, key_id: str) -> int | None: ...

    # =========================================================================
    # Sweeps
    # =========================================================================

    def purge_expired_credentials(self, now: int) -> dict[str, int]:
        """Delete expired codes and tokens. Returns counts per kind."""
        ...

    def purge_rate_counters(self, before: int) -> int:
        """Delete counters whose window started before *before*."""
        ...
