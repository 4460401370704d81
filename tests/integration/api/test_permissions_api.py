#!/usr/bin/env python3
"""
Integration Tests for Permission Sharing API
Tests for /api/v1/permissions endpoints
"""

import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.core.rate_limit import RateLimiter
from backend.db.models import Permission

BASE = "/api/v1/permissions"


async def create(client: AsyncClient, auth_headers, owner_id="u1", owner_name="Kim") -> dict:
    response = await client.post(
        BASE,
        json={"ownerId": owner_id, "ownerName": owner_name},
        headers=auth_headers(owner_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def verify(client: AsyncClient, permission_id: str, viewer_id="v1", headers=None):
    return await client.post(
        f"{BASE}/verify",
        json={"permissionId": permission_id, "viewerId": viewer_id},
        headers=headers or {},
    )


async def stored(session_maker, permission_id: str) -> Permission:
    async with session_maker() as session:
        result = await session.execute(
            select(Permission).where(Permission.permission_id == permission_id)
        )
        return result.scalar_one_or_none()


@pytest.mark.integration
class TestCreatePermissionEndpoint:
    """Test POST /api/v1/permissions"""

    @pytest.mark.asyncio
    async def test_create_permission(self, client: AsyncClient, auth_headers, session_maker):
        """Test issuing a permission returns token, expiry and limit"""
        before = datetime.now(timezone.utc)

        body = await create(client, auth_headers)

        assert set(body) == {"permissionId", "expiresAt", "usageLimit"}
        assert re.fullmatch(r"[0-9a-f]{32}", body["permissionId"])
        assert body["usageLimit"] == 3
        expires_at = datetime.fromisoformat(body["expiresAt"])
        assert before + timedelta(days=7) <= expires_at <= datetime.now(timezone.utc) + timedelta(days=7)

        permission = await stored(session_maker, body["permissionId"])
        assert permission.status == "active"
        assert permission.usage_count == 0

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        """Test issuing without a bearer token is 401"""
        response = await client.post(BASE, json={"ownerId": "u1", "ownerName": "Kim"})

        assert response.status_code == 401
        assert response.json()["code"] == "authentication_error"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient):
        """Test a malformed bearer token is 401"""
        response = await client.post(
            BASE,
            json={"ownerId": "u1", "ownerName": "Kim"},
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_cannot_share_someone_elses_chart(self, client: AsyncClient, auth_headers, session_maker):
        """Test ownerId must match the authenticated caller"""
        response = await client.post(
            BASE,
            json={"ownerId": "victim", "ownerName": "Kim"},
            headers=auth_headers("attacker"),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "authorization_error"
        async with session_maker() as session:
            result = await session.execute(select(Permission))
            assert result.scalars().all() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"ownerId": "u1"},
        {"ownerName": "Kim"},
        {"ownerId": "u1", "ownerName": ""},
        {},
    ])
    async def test_missing_fields(self, client: AsyncClient, auth_headers, body):
        """Test missing fields are 400 with a readable reason"""
        response = await client.post(BASE, json=body, headers=auth_headers("u1"))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Required fields are missing"
        assert data["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_owner_id_whitespace_ignored(self, client: AsyncClient, auth_headers, session_maker):
        """Test surrounding whitespace in ownerId does not count as another owner"""
        response = await client.post(
            BASE,
            json={"ownerId": " u1 ", "ownerName": "Kim"},
            headers=auth_headers("u1"),
        )

        assert response.status_code == 201
        permission = await stored(session_maker, response.json()["permissionId"])
        assert permission.owner_id == "u1"

    @pytest.mark.asyncio
    async def test_store_failure_is_500(self, client: AsyncClient, auth_headers):
        """Test a failed write is reported as store_error"""
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))

        with patch.object(AsyncSession, "commit", AsyncMock(side_effect=failure)):
            response = await client.post(
                BASE,
                json={"ownerId": "u1", "ownerName": "Kim"},
                headers=auth_headers("u1"),
            )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to save permission"
        assert body["code"] == "store_error"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_malformed_body(self, client: AsyncClient, auth_headers):
        """Test a non-JSON body is a validation error"""
        headers = {**auth_headers("u1"), "Content-Type": "application/json"}
        response = await client.post(BASE, content=b"{not json", headers=headers)

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        assert isinstance(response.json()["error"], str)


@pytest.mark.integration
class TestVerifyPermissionEndpoint:
    """Test POST /api/v1/permissions/verify"""

    @pytest.mark.asyncio
    async def test_three_views_then_limit(self, client: AsyncClient, auth_headers, seed_chart, sample_chart, session_maker):
        """Test views return 2, 1, 0 remaining and the 4th is rejected and recorded"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        remaining = []
        for _ in range(3):
            response = await verify(client, grant["permissionId"])
            assert response.status_code == 200, response.text
            body = response.json()
            assert body["chart"] == sample_chart
            assert body["expiresAt"] == grant["expiresAt"]
            remaining.append(body["remainingViews"])

        assert remaining == [2, 1, 0]
        assert (await stored(session_maker, grant["permissionId"])).status == "active"

        response = await verify(client, grant["permissionId"])
        assert response.status_code == 403
        assert response.json()["code"] == "usage_exceeded"
        assert (await stored(session_maker, grant["permissionId"])).status == "used"

        response = await verify(client, grant["permissionId"])
        assert response.status_code == 403
        assert response.json()["error"] == "All views for this permission have been used"

    @pytest.mark.asyncio
    async def test_expired(self, client: AsyncClient, auth_headers, seed_chart, session_maker):
        """Test a permission past its expiry is rejected and marked expired"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        async with session_maker() as session:
            await session.execute(
                update(Permission)
                .where(Permission.permission_id == grant["permissionId"])
                .values(expires_at=datetime.now(timezone.utc) - timedelta(days=1))
            )
            await session.commit()

        response = await verify(client, grant["permissionId"])

        assert response.status_code == 403
        assert response.json()["code"] == "permission_expired"
        permission = await stored(session_maker, grant["permissionId"])
        assert permission.status == "expired"
        assert permission.usage_count == 0

    @pytest.mark.asyncio
    async def test_unknown_permission(self, client: AsyncClient):
        """Test an unknown token is 404"""
        response = await verify(client, "0" * 32)

        assert response.status_code == 404
        assert response.json()["error"] == "Permission not found"
        assert response.json()["code"] == "permission_not_found"

    @pytest.mark.asyncio
    async def test_chart_not_found(self, client: AsyncClient, auth_headers, session_maker):
        """Test a missing chart is 404 while the view stays recorded"""
        grant = await create(client, auth_headers)

        response = await verify(client, grant["permissionId"], viewer_id="v9")

        assert response.status_code == 404
        assert response.json()["code"] == "chart_not_found"
        permission = await stored(session_maker, grant["permissionId"])
        assert permission.usage_count == 1
        assert permission.granted_to == "v9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"permissionId": "a" * 32},
        {"viewerId": "v1"},
        {},
    ])
    async def test_missing_fields(self, client: AsyncClient, body):
        """Test missing fields are 400"""
        response = await client.post(f"{BASE}/verify", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Required fields are missing"

    @pytest.mark.asyncio
    async def test_viewer_must_match_token(self, client: AsyncClient, auth_headers, seed_chart, session_maker):
        """Test an authenticated viewer cannot claim another identity"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        response = await verify(client, grant["permissionId"], viewer_id="v1", headers=auth_headers("v2"))

        assert response.status_code == 403
        assert (await stored(session_maker, grant["permissionId"])).usage_count == 0

    @pytest.mark.asyncio
    async def test_remaining_views_over_api(self, client: AsyncClient, auth_headers, seed_chart, session_maker):
        """Test the third view succeeds with zero remaining and is counted once"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        statuses = []
        for _ in range(3):
            response = await verify(client, grant["permissionId"])
            statuses.append((response.status_code, response.json().get("remainingViews")))

        assert statuses == [(200, 2), (200, 1), (200, 0)]
        assert (await stored(session_maker, grant["permissionId"])).usage_count == 3

    @pytest.mark.asyncio
    async def test_viewer_id_whitespace_ignored(self, client: AsyncClient, auth_headers, seed_chart, session_maker):
        """Test surrounding whitespace in viewerId still matches the token"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        response = await verify(client, grant["permissionId"], viewer_id=" v1 ", headers=auth_headers("v1"))

        assert response.status_code == 200
        assert (await stored(session_maker, grant["permissionId"])).granted_to == "v1"

    @pytest.mark.asyncio
    async def test_authenticated_viewer(self, client: AsyncClient, auth_headers, seed_chart):
        """Test a viewer whose token matches viewerId is granted"""
        await seed_chart("u1")
        grant = await create(client, auth_headers)

        response = await verify(client, grant["permissionId"], viewer_id="v1", headers=auth_headers("v1"))

        assert response.status_code == 200
        assert response.json()["remainingViews"] == 2


@pytest.mark.integration
class TestListPermissionsEndpoint:
    """Test GET /api/v1/permissions"""

    @pytest.mark.asyncio
    async def test_lists_own_permissions(self, client: AsyncClient, auth_headers, seed_chart):
        """Test the owner sees only their permissions with usage"""
        await seed_chart("u1")
        first = await create(client, auth_headers)
        second = await create(client, auth_headers)
        await create(client, auth_headers, owner_id="u2", owner_name="Lee")
        await verify(client, first["permissionId"], viewer_id="v1")

        response = await client.get(BASE, headers=auth_headers("u1"))

        assert response.status_code == 200
        permissions = response.json()["permissions"]
        assert {p["permissionId"] for p in permissions} == {first["permissionId"], second["permissionId"]}
        by_id = {p["permissionId"]: p for p in permissions}
        assert by_id[first["permissionId"]]["usageCount"] == 1
        assert by_id[first["permissionId"]]["grantedTo"] == "v1"
        assert by_id[first["permissionId"]]["effectiveStatus"] == "active"
        assert by_id[second["permissionId"]]["lastViewedAt"] is None

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        """Test listing without a token is 401"""
        response = await client.get(BASE)

        assert response.status_code == 401


@pytest.mark.integration
class TestRateLimiting:
    """Test Redis-backed rate limiting on permission endpoints"""

    @staticmethod
    def limiter_with_count(count: int) -> RateLimiter:
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[count, True])
        redis_client = MagicMock()
        redis_client.pipeline.return_value = pipe
        return RateLimiter(redis_client)

    @pytest.mark.asyncio
    async def test_over_limit_is_429(self, client: AsyncClient, session_maker):
        """Test a request over the window limit is rejected with Retry-After"""
        limiter = self.limiter_with_count(11)

        with patch("backend.api.dependencies.get_rate_limiter", return_value=limiter):
            response = await verify(client, "0" * 32)

        assert response.status_code == 429
        assert response.json()["code"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_under_limit_sets_headers(self, client: AsyncClient, auth_headers):
        """Test allowed requests report remaining quota"""
        limiter = self.limiter_with_count(4)

        with patch("backend.api.dependencies.get_rate_limiter", return_value=limiter):
            response = await client.post(
                BASE,
                json={"ownerId": "u1", "ownerName": "Kim"},
                headers=auth_headers("u1"),
            )

        assert response.status_code == 201
        assert response.headers["X-RateLimit-Limit"] == "60"
        assert response.headers["X-RateLimit-Remaining"] == "56"
        call_key = limiter.client.pipeline.return_value.incr.call_args[0][0]
        assert call_key.startswith("ratelimit:permissions:create:")

    @pytest.mark.asyncio
    async def test_redis_down_fails_open(self, client: AsyncClient):
        """Test the request proceeds when the counter store is unreachable"""
        limiter = self.limiter_with_count(0)
        limiter.client.pipeline.return_value.execute = AsyncMock(
            side_effect=RedisConnectionError("connection refused")
        )

        with patch("backend.api.dependencies.get_rate_limiter", return_value=limiter):
            response = await verify(client, "0" * 32)

        assert response.status_code == 404
