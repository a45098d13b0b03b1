"""
Token storage — persist / load per-tenant OAuth tokens.

The access token is short-lived and stored as-is.  The refresh token is
encrypted with :class:`~oauth.encryption.TokenCipher` before it is written,
so only the ``ciphertext:iv`` envelope ever reaches the database.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.helpers import as_utc, upsert
from database.models import TenantCredential
from oauth.encryption import TokenCipher
from oauth.exceptions import NotFoundError
from oauth.schemas import TokenSet

logger = logging.getLogger(__name__)


class TokenStorage:
    """Encrypted, upsert-by-tenant credential store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher
        # Serialises writers against key rotation within this process
        self._write_lock = asyncio.Lock()

    async def save(self, tenant_id: str, tokens: TokenSet) -> None:
        """
        Create or fully replace the credential row for *tenant_id*.

        Nothing is merged with a previous row: access token, refresh token
        envelope and expiry all come from *tokens*.
        """
        async with self._write_lock:
            envelope = self._cipher.encrypt(tokens.refresh_token)
            async with self._session_factory() as session:
                await upsert(
                    session,
                    TenantCredential,
                    {
                        "tenant_id": tenant_id,
                        "access_token": tokens.access_token,
                        "encrypted_refresh_token": envelope,
                        "expires_at": as_utc(tokens.expires_at),
                        "updated_at": datetime.now(timezone.utc),
                    },
                    index_elements=["tenant_id"],
                )
                await session.commit()
        logger.info("Stored tokens for tenant %s (expires %s)", tenant_id, tokens.expires_at)

    async def retrieve(self, tenant_id: str) -> TokenSet:
        """
        Load and decrypt the tokens for *tenant_id*.

        Raises
        ------
        NotFoundError
            No credential row exists for the tenant.
        DecryptionError
            The stored envelope does not decrypt under the current key.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantCredential).where(TenantCredential.tenant_id == tenant_id)
            )
            row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(
                f"No tokens stored for tenant '{tenant_id}'",
                tenant_id=tenant_id,
            )

        return TokenSet(
            access_token=row.access_token,
            refresh_token=self._cipher.decrypt(row.encrypted_refresh_token),
            expires_at=as_utc(row.expires_at),
        )

    async def exists(self, tenant_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantCredential.tenant_id).where(
                    TenantCredential.tenant_id == tenant_id
                )
            )
            return result.scalar_one_or_none() is not None

    async def delete(self, tenant_id: str) -> bool:
        """Remove a tenant's credentials.  Returns True if a row was deleted."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(TenantCredential).where(TenantCredential.tenant_id == tenant_id)
            )
            await session.commit()
        deleted = bool(result.rowcount)
        if deleted:
            logger.info("Deleted tokens for tenant %s", tenant_id)
        return deleted

    async def reencrypt_all(self, new_cipher: TokenCipher) -> int:
        """
        Re-encrypt every stored refresh token under *new_cipher*.

        Runs in a single transaction: if any envelope fails to decrypt under
        the current key the ``DecryptionError`` propagates and nothing is
        written.  On success the store switches to *new_cipher*.

        Saves through this store wait for the migration, and rows are locked
        ``FOR UPDATE`` against writers in other processes.  Other workers
        still hold the old key, though: after migrating, set
        ``TOKEN_ENCRYPTION_KEY`` to the new key and restart every worker
        (``python -m cli rotate-key`` does the migration step).

        Returns the number of rows migrated.
        """
        async with self._write_lock:
            async with self._session_factory() as session:
                result = await session.execute(select(TenantCredential).with_for_update())
                rows = result.scalars().all()
                for row in rows:
                    plaintext = self._cipher.decrypt(row.encrypted_refresh_token)
                    row.encrypted_refresh_token = new_cipher.encrypt(plaintext)
                await session.commit()

            self._cipher = new_cipher
        logger.info("Re-encrypted %d stored refresh tokens under a new key", len(rows))
        return len(rows)
