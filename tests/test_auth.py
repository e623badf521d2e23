from uuid import uuid4

import pytest
from fastapi import HTTPException
from httpx import ASGITransport, AsyncClient
from jose import jwt

from campus_fees.auth.dependencies import get_current_actor
from campus_fees.core.config import settings
from campus_fees.main import app


def make_token(**claims) -> str:
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.mark.asyncio
async def test_actor_is_read_from_token_claims() -> None:
    user_id = uuid4()
    token = make_token(user_id=str(user_id), role="ADMIN", name="Priya Raman", email="priya@college.test")

    actor = await get_current_actor(token)

    assert actor.id == user_id
    assert actor.role == "ADMIN"
    assert actor.ref().name == "Priya Raman"
    assert actor.ref().email == "priya@college.test"


@pytest.mark.asyncio
async def test_sub_claim_and_email_fallback() -> None:
    user_id = uuid4()
    actor = await get_current_actor(make_token(sub=str(user_id), role="STUDENT", email="s1@college.test"))
    assert actor.id == user_id
    assert actor.name == "s1@college.test"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        jwt.encode({"user_id": str(uuid4())}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm),
        jwt.encode({"user_id": "nope", "role": "ADMIN"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm),
        jwt.encode({"user_id": str(uuid4()), "role": "ADMIN"}, "other-secret", algorithm="HS256"),
    ],
)
async def test_bad_tokens_are_rejected(token: str) -> None:
    with pytest.raises(HTTPException) as exc:
        await get_current_actor(token)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_routes_require_a_token(db_session) -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/fee-structures")
    assert response.status_code == 401
