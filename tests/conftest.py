"""Shared pytest fixtures for Resortly tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset global JWKS cache to avoid cross-test contamination.

    The OIDC JWKS cache is a module-level global that persists between tests.
    Without this reset, a cached JWKS from a previous test may not match the
    current test's keys.
    """
    import resortly.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture(autouse=True)
def _default_occupying_policy(monkeypatch):
    """Run every test under the default occupying policy unless it opts out."""
    monkeypatch.delenv("RESERVATION_OCCUPYING_POLICY", raising=False)
