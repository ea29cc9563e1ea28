"""
Short Link Service

This service handles the core business logic for short links:
- Validating target URLs
- Creating links with unique generated codes
- Resolving codes for redirect
- Soft-removing links while keeping their view history

Separated from the API layer for testability and maintainability.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DatabaseError,
    ExhaustedRetriesError,
    InvalidURLError,
    ShortCodeNotFoundError,
    UserNotFoundError,
)
from app.core.setting import settings
from app.core.validators import url_rejection_reason
from app.db.models import ShortLink, User, utcnow
from app.services.short_code_generator import ShortCodeGenerator

logger = logging.getLogger(__name__)


class LinkService:
    """
    Create and resolve short links.

    The code generator checks uniqueness against this service's session;
    a concurrent insert of the same code is caught by the unique index and
    retried within the same attempt budget.
    """

    def __init__(self, session: AsyncSession, generator: Optional[ShortCodeGenerator] = None):
        """
        Args:
            session: Database session
            generator: Code generator (defaults to one configured from settings)
        """
        self.session = session
        self.generator = generator or ShortCodeGenerator(
            exists=self.code_exists,
            length=settings.SHORT_CODE_LENGTH,
            max_attempts=settings.SHORT_CODE_MAX_ATTEMPTS,
        )

    async def code_exists(self, code: str) -> bool:
        statement = select(ShortLink.id).where(ShortLink.code == code).limit(1)
        result = await self.session.execute(statement)
        return result.first() is not None

    async def shorten(self, target_url: str, owner_id: Optional[int] = None) -> ShortLink:
        """
        Create a new short link.

        Args:
            target_url: The long URL to shorten
            owner_id: Optional owner whose rates will apply to the earnings

        Returns:
            The persisted ShortLink

        Raises:
            InvalidURLError: If the URL is empty, too long or not http(s)
            UserNotFoundError: If owner_id does not exist
            ExhaustedRetriesError: If no unused code could be found
            DatabaseError: If the insert fails for another reason
        """
        reason = url_rejection_reason(target_url)
        if reason:
            raise InvalidURLError(target_url, reason=reason)

        if owner_id is not None and await self.session.get(User, owner_id) is None:
            raise UserNotFoundError(owner_id)

        attempts = self.generator.max_attempts
        for _ in range(attempts):
            code = await self.generator.generate()
            link = ShortLink(code=code, target_url=target_url, owner_id=owner_id)
            self.session.add(link)
            try:
                await self.session.flush()
                await self.session.commit()
            except IntegrityError:
                # Another request inserted the same code between check and insert
                await self.session.rollback()
                logger.warning(f"Short code {code} taken concurrently, retrying")
                continue
            except SQLAlchemyError as e:
                await self.session.rollback()
                raise DatabaseError(f"Failed to create short link: {e}", original_error=e)

            await self.session.refresh(link)
            logger.info(f"Created short link {code} for {target_url} (owner={owner_id})")
            return link

        raise ExhaustedRetriesError(attempts)

    async def find_by_code(self, code: str) -> Optional[ShortLink]:
        """Active link for a code, or None."""
        statement = select(ShortLink).where(
            ShortLink.code == code,
            ShortLink.is_active.is_(True),
        )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def lookup(self, code: str) -> ShortLink:
        """
        Resolve a code for redirect.

        Raises:
            ShortCodeNotFoundError: If the code is unknown or soft-removed
        """
        link = await self.find_by_code(code)
        if link is None:
            raise ShortCodeNotFoundError(code)
        return link

    async def deactivate(self, code: str) -> None:
        """
        Soft-remove a link. Its code stays reserved and its views are kept.

        Raises:
            ShortCodeNotFoundError: If no active link has this code
        """
        statement = (
            update(ShortLink)
            .where(ShortLink.code == code, ShortLink.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        if result.rowcount == 0:
            raise ShortCodeNotFoundError(code)
        await self.session.commit()
        logger.info(f"Deactivated short link {code}")
