"""Shared fixtures: a SQLite-backed store and an in-memory identity provider."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from enhancement_tracker.auth import (  # noqa: E402
    TOTP,
    AuthenticationError,
    Factor,
    IdentityProviderError,
    Principal,
    TotpEnrollment,
)
from enhancement_tracker.config import AppSettings  # noqa: E402
from enhancement_tracker.db import Base, build_engine, build_session_factory  # noqa: E402
from enhancement_tracker.store import EnhancementStore  # noqa: E402

GOOD_TOKEN = "good-token"
NO_MFA_TOKEN = "no-mfa-token"
VALID_CODE = "123456"
AUTH_HEADERS = {"Authorization": f"Bearer {GOOD_TOKEN}"}


class FakeIdentityProvider:
    def __init__(self) -> None:
        self.principals: Dict[str, Principal] = {
            GOOD_TOKEN: Principal(id="user-1", token=GOOD_TOKEN, email="lead@example.com"),
            NO_MFA_TOKEN: Principal(id="user-2", token=NO_MFA_TOKEN, email="new@example.com"),
        }
        self.factors: Dict[str, List[Factor]] = {
            "user-1": [Factor(id="factor-1", factor_type=TOTP, status="verified", friendly_name="Phone")],
            "user-2": [],
        }
        self.fail_factor_lookup = False
        self._next_factor = 100

    def verify_token(self, token: str) -> Principal:
        try:
            return self.principals[token]
        except KeyError:
            raise AuthenticationError("Invalid or expired token") from None

    def list_factors(self, principal: Principal) -> List[Factor]:
        if self.fail_factor_lookup:
            raise IdentityProviderError("upstream unavailable", status_code=503)
        return list(self.factors.get(principal.id, []))

    def enroll_totp(self, principal: Principal, friendly_name: str | None = None) -> TotpEnrollment:
        self._next_factor += 1
        factor_id = f"factor-{self._next_factor}"
        self.factors.setdefault(principal.id, []).append(
            Factor(id=factor_id, factor_type=TOTP, status="unverified", friendly_name=friendly_name)
        )
        return TotpEnrollment(
            factor_id=factor_id,
            qr_code="data:image/svg+xml;utf-8,<svg/>",
            secret="JBSWY3DPEHPK3PXP",
            uri=f"otpauth://totp/tracker:{principal.email}?secret=JBSWY3DPEHPK3PXP",
        )

    def verify_enrollment(self, principal: Principal, factor_id: str, code: str) -> None:
        if code != VALID_CODE:
            raise IdentityProviderError("Invalid TOTP code entered", status_code=422)
        self.factors[principal.id] = [
            Factor(id=f.id, factor_type=f.factor_type, status="verified", friendly_name=f.friendly_name)
            if f.id == factor_id
            else f
            for f in self.factors.get(principal.id, [])
        ]

    def unenroll(self, principal: Principal, factor_id: str) -> None:
        self.factors[principal.id] = [f for f in self.factors.get(principal.id, []) if f.id != factor_id]


def build_settings(**overrides: str) -> AppSettings:
    values = {
        "DATABASE_URL": "sqlite:///unused.db",
        "SUPABASE_URL": "https://project.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
        "SLACK_SIGNING_SECRET": "secret",
        "ALLOWED_ORIGINS": "http://localhost:5173",
    }
    values.update(overrides)
    return AppSettings.model_validate(values)


@pytest.fixture
def store(tmp_path) -> EnhancementStore:
    engine = build_engine(f"sqlite:///{tmp_path / 'tracker.db'}")
    Base.metadata.create_all(engine)
    return EnhancementStore(build_session_factory(engine))


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def settings() -> AppSettings:
    return build_settings()


@pytest.fixture
def flask_app(settings, store, identity_provider):
    import app as app_module

    return app_module.create_app(settings=settings, store=store, identity_provider=identity_provider)


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
