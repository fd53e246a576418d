"""Credential access for connected social accounts.

Tokens are acquired and refreshed by the account connection flow; this
service only stores the encrypted form and decrypts it at publish time.
All credential access is logged for audit purposes.

Usage:
    from app.services.credential_service import CredentialService

    service = CredentialService()
    creds = await service.get_account_credentials(user_id, Platform.FACEBOOK, db)

Security Notes:
    - Credentials are encrypted before database storage
    - Access events are logged with structlog (account_id, platform, success)
    - NEVER log or expose plaintext credentials
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Platform, SocialAccount
from app.utils.encryption import DecryptionError, get_encryption_service

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AccountCredentials:
    """Decrypted credentials for one connected account.

    `access_token` is excluded from repr so accidental logging of the object
    does not leak it.
    """

    account_id: uuid.UUID
    platform: Platform
    platform_user_id: str
    page_id: str | None
    username: str | None
    access_token: str = field(repr=False)
    token_expires_at: datetime | None = None

    @property
    def facebook_page_id(self) -> str:
        return self.page_id or self.platform_user_id


class CredentialService:
    """Encrypts and decrypts social account tokens."""

    async def _get_account(
        self, user_id: uuid.UUID, platform: Platform, db: AsyncSession
    ) -> SocialAccount | None:
        result = await db.execute(
            select(SocialAccount)
            .where(SocialAccount.user_id == user_id, SocialAccount.platform == platform)
            .order_by(SocialAccount.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def store_account(
        self,
        user_id: uuid.UUID,
        platform: Platform,
        platform_user_id: str,
        access_token: str,
        db: AsyncSession,
        refresh_token: str | None = None,
        page_id: str | None = None,
        username: str | None = None,
        token_expires_at: datetime | None = None,
    ) -> SocialAccount:
        """Create or update the user's account for `platform` with encrypted tokens."""
        encryption_service = get_encryption_service()
        account = await self._get_account(user_id, platform, db)
        if account is None:
            account = SocialAccount(user_id=user_id, platform=platform)
            db.add(account)

        account.platform_user_id = platform_user_id
        account.page_id = page_id
        account.username = username
        account.access_token_encrypted = encryption_service.encrypt(access_token)
        account.refresh_token_encrypted = (
            encryption_service.encrypt(refresh_token) if refresh_token else None
        )
        account.token_expires_at = token_expires_at
        await db.flush()

        log.info(
            "credential_stored",
            account_id=str(account.id),
            platform=platform.value,
            success=True,
        )
        return account

    async def get_account_credentials(
        self, user_id: uuid.UUID, platform: Platform, db: AsyncSession
    ) -> AccountCredentials | None:
        """Load and decrypt the user's connected account for a platform.

        Returns:
            Decrypted credentials, or None when no account is connected.

        Raises:
            DecryptionError: If the stored token cannot be decrypted.
        """
        account = await self._get_account(user_id, platform, db)
        if account is None:
            log.info(
                "credential_get",
                user_id=str(user_id),
                platform=platform.value,
                has_credential=False,
            )
            return None

        try:
            access_token = get_encryption_service().decrypt(
                account.access_token_encrypted, account_id=str(account.id)
            )
        except DecryptionError:
            log.error(
                "credential_decrypt_failed",
                account_id=str(account.id),
                platform=platform.value,
            )
            raise

        log.info(
            "credential_get",
            account_id=str(account.id),
            platform=platform.value,
            has_credential=True,
        )
        return AccountCredentials(
            account_id=account.id,
            platform=platform,
            platform_user_id=account.platform_user_id,
            page_id=account.page_id,
            username=account.username,
            access_token=access_token,
            token_expires_at=account.token_expires_at,
        )
