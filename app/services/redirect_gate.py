"""
Redirect Gate

Ties a browser session to one interstitial view attempt for one link.

States per (session, link code):
    NONE --issue--> ISSUED --redeem--> REDEEMED (terminal)

- issue() stores a fresh random token, replacing any unredeemed one for the
  same link, so only the most recent token can be redeemed
- redeem() always clears the stored token, whether or not it matches;
  a failed attempt cannot be retried with another guess
"""

import enum
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from app.db.models import ShortLink
from app.services.credential_store import SessionCredentialStore, StoredCredential
from app.services.link_service import LinkService
from app.services.rate_limiter import RateLimiter, Verdict

logger = logging.getLogger(__name__)


class RedemptionOutcome(str, enum.Enum):
    MATCHED = "matched"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class IssuedCredential:
    link: ShortLink
    token: str
    verdict: Verdict

    @property
    def advisory_message(self) -> Optional[str]:
        """Warning to show before the interstitial, None if the view would count."""
        return None if self.verdict.allowed else self.verdict.message


@dataclass(frozen=True)
class Redemption:
    outcome: RedemptionOutcome
    referrer: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.outcome is RedemptionOutcome.MATCHED


def new_token() -> str:
    return secrets.token_urlsafe(32)


class RedirectGate:
    """
    Issues and redeems single-use interstitial credentials.
    """

    def __init__(
        self,
        store: SessionCredentialStore,
        link_service: LinkService,
        rate_limiter: RateLimiter,
        token_factory: Callable[[], str] = new_token,
    ):
        self.store = store
        self.link_service = link_service
        self.rate_limiter = rate_limiter
        self.token_factory = token_factory

    async def issue(
        self,
        session_id: str,
        link_code: str,
        client_id: str,
        referrer: Optional[str] = None,
    ) -> IssuedCredential:
        """
        Issue a credential for viewing `link_code`.

        The rate limit check here is advisory only and never blocks issuance.

        Raises:
            ShortCodeNotFoundError: If the code does not resolve to a link
        """
        link = await self.link_service.lookup(link_code)
        verdict = await self.rate_limiter.check(client_id)

        token = self.token_factory()
        self.store.put(
            session_id,
            link_code,
            StoredCredential(token=token, issued_at=self.store.now(), referrer=referrer),
        )
        logger.info(f"Issued interstitial credential for {link_code} (client={client_id})")
        return IssuedCredential(link=link, token=token, verdict=verdict)

    def redeem(self, session_id: str, link_code: str, presented_token: Optional[str]) -> Redemption:
        """
        Consume the credential for `link_code` and compare it with the
        presented token. The stored credential is gone afterwards either way.
        """
        credential = self.store.take(session_id, link_code)

        if credential is None:
            logger.warning(f"No live credential for {link_code}; rejecting completion")
            return Redemption(RedemptionOutcome.MISMATCH)

        if not presented_token or not secrets.compare_digest(
            credential.token.encode(), presented_token.encode()
        ):
            logger.warning(f"Credential mismatch for {link_code}; rejecting completion")
            return Redemption(RedemptionOutcome.MISMATCH)

        return Redemption(RedemptionOutcome.MATCHED, referrer=credential.referrer)
