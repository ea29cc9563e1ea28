"""
Tests for URL validation and the short link service.
"""

import itertools

import pytest

from app.core.exceptions import (
    ExhaustedRetriesError,
    InvalidURLError,
    ShortCodeNotFoundError,
    UserNotFoundError,
)
from app.core.validators import MAX_URL_LENGTH, is_valid_url, sanitize_short_code, url_rejection_reason
from app.services.link_service import LinkService
from app.services.short_code_generator import ShortCodeGenerator


class TestURLValidation:
    """Test URL validation function."""

    def test_valid_urls(self):
        valid_urls = [
            "http://example.com",
            "https://example.com",
            "https://www.example.com/path/to/page",
            "http://subdomain.example.com:8080/path?query=value",
            "http://localhost:3000/dashboard",
        ]
        for url in valid_urls:
            assert is_valid_url(url), f"Should be valid: {url}"

    def test_invalid_urls(self):
        invalid_urls = [
            "not-a-url",
            "ftp://example.com",
            "example.com",
            "",
            "   ",
            "http://",
            "https://intranet/page",
        ]
        for url in invalid_urls:
            assert not is_valid_url(url), f"Should be invalid: {url}"

    def test_length_limit(self):
        prefix = "https://example.com/"
        at_limit = prefix + "a" * (MAX_URL_LENGTH - len(prefix))
        assert is_valid_url(at_limit)
        assert "too long" in url_rejection_reason(at_limit + "a")

    def test_sanitize_short_code(self):
        assert sanitize_short_code(" abc123 ") == "abc123"
        assert sanitize_short_code("abc-123") is None
        assert sanitize_short_code("") is None
        assert sanitize_short_code("a" * 21) is None


class TestLinkService:

    @pytest.mark.asyncio
    async def test_shorten_creates_fixed_length_code(self, session):
        service = LinkService(session)

        link = await service.shorten("https://example.com/some/long/path")

        assert len(link.code) == 6
        assert link.id is not None
        assert link.view_count == 0
        assert link.is_active

    @pytest.mark.asyncio
    async def test_shorten_with_owner(self, session, owner):
        link = await LinkService(session).shorten("https://example.com", owner_id=owner.id)
        assert link.owner_id == owner.id

    @pytest.mark.asyncio
    async def test_shorten_with_unknown_owner(self, session):
        with pytest.raises(UserNotFoundError):
            await LinkService(session).shorten("https://example.com", owner_id=999)

    @pytest.mark.asyncio
    async def test_shorten_rejects_invalid_url(self, session):
        service = LinkService(session)
        for url in ["", "example.com", "ftp://example.com/file", "https://example.com/" + "x" * 2048]:
            with pytest.raises(InvalidURLError):
                await service.shorten(url)

    @pytest.mark.asyncio
    async def test_lookup_roundtrip(self, session):
        service = LinkService(session)
        created = await service.shorten("https://example.com/page")

        found = await service.lookup(created.code)

        assert found.id == created.id
        assert found.target_url == "https://example.com/page"

    @pytest.mark.asyncio
    async def test_lookup_unknown_code(self, session):
        with pytest.raises(ShortCodeNotFoundError):
            await LinkService(session).lookup("nope00")

    @pytest.mark.asyncio
    async def test_deactivated_link_is_not_found(self, session, link):
        service = LinkService(session)

        await service.deactivate(link.code)

        assert await service.find_by_code(link.code) is None
        assert await service.code_exists(link.code)
        with pytest.raises(ShortCodeNotFoundError):
            await service.deactivate(link.code)

    @pytest.mark.asyncio
    async def test_collision_with_existing_code_is_retried(self, session, link):
        # First candidate collides with the existing "abc123" link
        candidates = iter(["abc123", "xyz789"])
        service = LinkService(session)
        service.generator = ShortCodeGenerator(service.code_exists, length=6)
        service.generator.candidate = lambda: next(candidates)

        created = await service.shorten("https://example.com/other")

        assert created.code == "xyz789"

    @pytest.mark.asyncio
    async def test_exhausted_code_space(self, session, link):
        service = LinkService(session)
        service.generator = ShortCodeGenerator(service.code_exists, length=6, max_attempts=3)
        service.generator.candidate = lambda: "abc123"

        with pytest.raises(ExhaustedRetriesError):
            await service.shorten("https://example.com/other")


def test_sequential_candidates_are_distinct():
    values = itertools.count(10**9)

    async def exists(code):
        return False

    generator = ShortCodeGenerator(exists, length=6, random_source=lambda: next(values))
    assert len({generator.candidate() for _ in range(100)}) == 100
