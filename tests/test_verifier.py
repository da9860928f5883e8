from __future__ import annotations

from datetime import timedelta

import pytest

from credit_gate.auth.verifier import JWTIdentityVerifier
from credit_gate.errors import (
    ConfigurationError,
    InvalidCredentialError,
    UnauthenticatedError,
)

from conftest import SECRET, make_token


@pytest.mark.asyncio
async def test_valid_token_yields_subject():
    verifier = JWTIdentityVerifier(secret=SECRET)
    identity = await verifier.verify(make_token("user-42", email="ada@example.com", name="Ada"))

    assert identity.subject_id == "user-42"
    assert identity.email == "ada@example.com"
    assert identity.name == "Ada"


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "   "])
async def test_missing_token(token):
    verifier = JWTIdentityVerifier(secret=SECRET)
    with pytest.raises(UnauthenticatedError):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_rejects_bad_tokens():
    verifier = JWTIdentityVerifier(secret=SECRET)
    bad_tokens = [
        "not-a-jwt",
        make_token(secret="another-secret-key-that-is-long-enough-too"),
        make_token(expires_in=timedelta(minutes=-5)),
        make_token(subject=None),
    ]
    for token in bad_tokens:
        with pytest.raises(InvalidCredentialError) as exc_info:
            await verifier.verify(token)
        assert exc_info.value.message == "Unauthorized: Invalid token"


@pytest.mark.asyncio
async def test_audience_and_issuer_checked_when_configured():
    verifier = JWTIdentityVerifier(secret=SECRET, audience="credit-gate", issuer="https://issuer")

    good = make_token(aud="credit-gate", iss="https://issuer")
    assert (await verifier.verify(good)).subject_id == "user-1"

    with pytest.raises(InvalidCredentialError):
        await verifier.verify(make_token(aud="someone-else", iss="https://issuer"))
    with pytest.raises(InvalidCredentialError):
        await verifier.verify(make_token(aud="credit-gate", iss="https://elsewhere"))


def test_requires_key_material():
    with pytest.raises(ConfigurationError):
        JWTIdentityVerifier()
