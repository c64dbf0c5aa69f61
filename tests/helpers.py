"""Shared test helper functions for Resortly tests.

This module contains helper functions that can be imported by both conftest.py
and individual test files. These are NOT fixtures - they are regular functions.
"""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from resortly.infra.repositories.reservations_repository import ReservationRecord

CUSTOMER_ID = "11111111-1111-1111-1111-111111111111"
OWNER_ID = "22222222-2222-2222-2222-222222222222"
STRANGER_ID = "33333333-3333-3333-3333-333333333333"
ROOM_ID = "44444444-4444-4444-4444-444444444444"
RESORT_ID = "55555555-5555-5555-5555-555555555555"
RESERVATION_ID = "66666666-6666-6666-6666-666666666666"

CREATED_AT = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


def make_reservation(**overrides) -> ReservationRecord:
    """Build a ReservationRecord for Mar 1-5 2026 in status pending."""
    record = ReservationRecord(
        id=RESERVATION_ID,
        customer_id=CUSTOMER_ID,
        room_id=ROOM_ID,
        owner_id=OWNER_ID,
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 5),
        total_price=400,
        status="pending",
        deleted=False,
        created_at=CREATED_AT,
    )
    return replace(record, **overrides)


def room_row(*, nightly_rate: int = 100, deleted: bool = False) -> tuple:
    """Row as returned by rooms_repository.get_room's SELECT."""
    return (ROOM_ID, RESORT_ID, OWNER_ID, nightly_rate, 2, deleted)


def mock_txn_for(cur):
    """Build a txn() replacement that always yields cur."""

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://auth.example.com",
    aud: str = "resortly-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})
