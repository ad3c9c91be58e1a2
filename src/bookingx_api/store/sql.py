"""SQLAlchemy implementation of the credential store.

Created: 2026-02-20
Implements CredentialStoreProtocol on any SQLAlchemy-supported database.

Design notes:
- One short transaction per call; the database is the only source of truth.
  Calls made inside ``atomic()`` share one transaction instead, so a token
  grant commits its consumed code and its new tokens together or not at all.
- Single-use artifacts (codes, refresh tokens) are consumed with
  ``DELETE ... RETURNING``. Backends without it fall back to
  ``SELECT ... FOR UPDATE`` + ``DELETE`` with a rowcount check in the same
  transaction.
- Rate counters use ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` on
  SQLite and PostgreSQL, a locked read-modify-write elsewhere.
- Any SQLAlchemyError surfaces as StorageError.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bookingx_api.errors import StorageError
from bookingx_api.security.hashing import digest_token
from bookingx_api.store.models import (
    AccessToken,
    APIKey,
    AuthorizationCode,
    OAuthClient,
    RateLimitCounter,
    RefreshToken,
)

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


class SqlCredentialStore:
    """Relational credential store."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._clock = clock
        # Session of the atomic() block running on this thread, if any
        self._local = threading.local()

    def _now(self) -> int:
        return int(self._clock())

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run every store call made inside the block in one transaction.

        Any exception raised in the block rolls all of them back. Nested
        blocks join the outer one.
        """
        if getattr(self._local, "session", None) is not None:
            yield
            return
        with self._transaction() as session:
            self._local.session = session
            try:
                yield
            finally:
                self._local.session = None

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = getattr(self._local, "session", None)
        if session is not None:
            yield session
            return
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.error("Credential store operation failed", exc_info=True)
            raise StorageError(f"credential store unavailable: {exc.__class__.__name__}") from exc

    def _delete_returning(self, session: Session, model: type, *criteria: Any) -> Any:
        """Delete at most one row matching *criteria* and return it as a detached entity."""
        table = model.__table__
        if session.get_bind().dialect.delete_returning:
            stmt = delete(table).where(*criteria).returning(*table.c)
            row = session.execute(stmt).first()
            return model(**row._mapping) if row is not None else None

        found = session.execute(select(model).where(*criteria).with_for_update()).scalars().first()
        if found is None:
            return None
        result = session.execute(delete(table).where(table.c.id == found.id))
        if result.rowcount != 1:
            # Another transaction consumed it first
            return None
        session.expunge(found)
        return found

    # =========================================================================
    # Clients
    # =========================================================================

    def get_client(self, client_id: str) -> OAuthClient | None:
        with self._transaction() as session:
            return session.execute(
                select(OAuthClient).where(OAuthClient.client_id == client_id)
            ).scalar_one_or_none()

    def save_client(self, client: OAuthClient) -> OAuthClient:
        now = self._now()
        if client.created_at is None:
            client.created_at = now
        client.updated_at = now
        with self._transaction() as session:
            return session.merge(client)

    def list_clients(self, user_id: str | None = None) -> list[OAuthClient]:
        stmt = select(OAuthClient).order_by(OAuthClient.created_at, OAuthClient.id)
        if user_id is not None:
            stmt = stmt.where(OAuthClient.user_id == user_id)
        with self._transaction() as session:
            return list(session.execute(stmt).scalars())

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
    ) -> AuthorizationCode:
        row = AuthorizationCode(
            code_hash=digest_token(code),
            client_id=client_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            scope=scope,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            expires_at=expires_at,
            created_at=self._now(),
        )
        with self._transaction() as session:
            session.add(row)
        return row

    def consume_auth_code(self, code: str, client_id: str) -> AuthorizationCode | None:
        with self._transaction() as session:
            row = self._delete_returning(
                session,
                AuthorizationCode,
                AuthorizationCode.code_hash == digest_token(code),
                AuthorizationCode.client_id == client_id,
            )
        if row is None or row.expires_at <= self._now():
            return None
        return row

    # =========================================================================
    # Access and refresh tokens
    # =========================================================================

    def create_access_token(
        self, token: str, client_id: str, user_id: str | None, scope: str, expires_at: int
    ) -> AccessToken:
        row = AccessToken(
            token_hash=digest_token(token),
            client_id=client_id,
            user_id=user_id,
            scope=scope,
            expires_at=expires_at,
            created_at=self._now(),
        )
        with self._transaction() as session:
            session.add(row)
        return row

    def find_access_token(self, token: str) -> AccessToken | None:
        with self._transaction() as session:
            return session.execute(
                select(AccessToken).where(
                    AccessToken.token_hash == digest_token(token),
                    AccessToken.expires_at > self._now(),
                )
            ).scalar_one_or_none()

    def delete_access_token(self, token: str) -> bool:
        with self._transaction() as session:
            result = session.execute(
                delete(AccessToken).where(AccessToken.token_hash == digest_token(token))
            )
            return result.rowcount > 0

    def create_refresh_token(
        self, token: str, client_id: str, user_id: str | None, scope: str, expires_at: int
    ) -> RefreshToken:
        row = RefreshToken(
            token_hash=digest_token(token),
            client_id=client_id,
            user_id=user_id,
            scope=scope,
            expires_at=expires_at,
            created_at=self._now(),
        )
        with self._transaction() as session:
            session.add(row)
        return row

    def find_refresh_token(self, token: str) -> RefreshToken | None:
        with self._transaction() as session:
            return session.execute(
                select(RefreshToken).where(
                    RefreshToken.token_hash == digest_token(token),
                    RefreshToken.expires_at > self._now(),
                )
            ).scalar_one_or_none()

    def find_and_delete_refresh_token(self, token: str, client_id: str) -> RefreshToken | None:
        with self._transaction() as session:
            row = self._delete_returning(
                session,
                RefreshToken,
                RefreshToken.token_hash == digest_token(token),
                RefreshToken.client_id == client_id,
            )
        if row is None or row.expires_at <= self._now():
            return None
        return row

    def delete_refresh_token(self, token: str) -> bool:
        with self._transaction() as session:
            result = session.execute(
                delete(RefreshToken).where(RefreshToken.token_hash == digest_token(token))
            )
            return result.rowcount > 0

    # =========================================================================
    # API keys
    # =========================================================================

    def save_api_key(self, key: APIKey) -> APIKey:
        if key.created_at is None:
            key.created_at = self._now()
        with self._transaction() as session:
            return session.merge(key)

    def find_api_key(self, key_id: str) -> APIKey | None:
        with self._transaction() as session:
            return session.execute(
                select(APIKey).where(APIKey.key_id == key_id)
            ).scalar_one_or_none()

    def list_api_keys(self, user_id: str | None = None) -> list[APIKey]:
        stmt = select(APIKey).order_by(APIKey.created_at, APIKey.id)
        if user_id is not None:
            stmt = stmt.where(APIKey.user_id == user_id)
        with self._transaction() as session:
            return list(session.execute(stmt).scalars())

    def touch_api_key_usage(self, key_id: str, origin: str | None) -> None:
        with self._transaction() as session:
            session.execute(
                update(APIKey)
                .where(APIKey.key_id == key_id)
                .values(last_used=self._now(), last_ip=origin[:45] if origin else None)
            )

    # =========================================================================
    # Rate limiting
    # =========================================================================

    def get_rate_count(self, identifier: str, endpoint: str, window_start: int) -> int:
        with self._transaction() as session:
            count = session.execute(
                select(RateLimitCounter.requests).where(
                    RateLimitCounter.identifier == identifier,
                    RateLimitCounter.endpoint == endpoint,
                    RateLimitCounter.window_start == window_start,
                )
            ).scalar_one_or_none()
        return count or 0

    def increment_rate_counter(
        self, identifier: str, endpoint: str, window_start: int, limit: int | None = None
    ) -> int | None:
        if limit is not None and limit <= 0:
            return None
        with self._transaction() as session:
            insert_fn = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
            if insert_fn is not None:
                return self._upsert_increment(
                    session, insert_fn, identifier, endpoint, window_start, limit
                )
            return self._locked_increment(session, identifier, endpoint, window_start, limit)

    def _upsert_increment(
        self,
        session: Session,
        insert_fn: Callable,
        identifier: str,
        endpoint: str,
        window_start: int,
        limit: int | None,
    ) -> int | None:
        table = RateLimitCounter.__table__
        stmt = insert_fn(table).values(
            identifier=identifier, endpoint=endpoint, window_start=window_start, requests=1
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.identifier, table.c.endpoint, table.c.window_start],
            set_={"requests": table.c.requests + 1},
            where=(table.c.requests < limit) if limit is not None else None,
        ).returning(table.c.requests)
        # No row comes back when the conflict WHERE rejected the update
        return session.execute(stmt).scalar_one_or_none()

    def _locked_increment(
        self,
        session: Session,
        identifier: str,
        endpoint: str,
        window_start: int,
        limit: int | None,
    ) -> int | None:
        criteria = (
            RateLimitCounter.identifier == identifier,
            RateLimitCounter.endpoint == endpoint,
            RateLimitCounter.window_start == window_start,
        )
        locked = select(RateLimitCounter.requests).where(*criteria).with_for_update()
        current = session.execute(locked).scalar_one_or_none()
        if current is None:
            try:
                with session.begin_nested():
                    session.add(
                        RateLimitCounter(
                            identifier=identifier,
                            endpoint=endpoint,
                            window_start=window_start,
                            requests=1,
                        )
                    )
                return 1
            except IntegrityError:
                # Lost the insert race; the row exists now
                current = session.execute(locked).scalar_one()

        if limit is not None and current >= limit:
            return None
        session.execute(
            update(RateLimitCounter)
            .where(*criteria)
            .values(requests=RateLimitCounter.requests + 1)
        )
        return current + 1

    def get_custom_rate_limit(self, key_id: str) -> int | None:
        with self._transaction() as session:
            return session.execute(
                select(APIKey.rate_limit).where(APIKey.key_id == key_id)
            ).scalar_one_or_none()

    # =========================================================================
    # Sweeps
    # =========================================================================

    def purge_expired_credentials(self, now: int) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._transaction() as session:
            for name, model in (
                ("codes", AuthorizationCode),
                ("access_tokens", AccessToken),
                ("refresh_tokens", RefreshToken),
            ):
                result = session.execute(delete(model).where(model.expires_at <= now))
                counts[name] = result.rowcount
        return counts

    def purge_rate_counters(self, before: int) -> int:
        with self._transaction() as session:
            result = session.execute(
                delete(RateLimitCounter).where(RateLimitCounter.window_start < before)
            )
            return result.rowcount

    def count_rate_counters(self) -> int:
        with self._transaction() as session:
            return session.execute(select(func.count(RateLimitCounter.id))).scalar_one()
