"""Bearer credential and second-factor enforcement for protected routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Mapping, Protocol, Sequence

import httpx
import structlog
from flask import current_app, g, jsonify, request
from supabase import AuthError, Client, create_client

IDENTITY_PROVIDER_EXTENSION = "identity_provider"
TOTP = "totp"
VERIFIED = "verified"


class AuthenticationError(Exception):
    """Raised when the bearer credential is absent, malformed or rejected."""


class MFARequiredError(Exception):
    """Raised when an authenticated principal has no verified TOTP factor."""


class IdentityProviderError(Exception):
    """Raised when the identity provider fails or rejects a factor operation."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Factor:
    id: str
    factor_type: str
    status: str
    friendly_name: str | None = None

    @property
    def is_verified_totp(self) -> bool:
        return self.factor_type == TOTP and self.status == VERIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "friendlyName": self.friendly_name,
            "factorType": self.factor_type,
            "status": self.status,
        }


@dataclass(frozen=True)
class Principal:
    id: str
    token: str = field(repr=False)
    email: str | None = None


@dataclass(frozen=True)
class TotpEnrollment:
    factor_id: str
    qr_code: str | None
    secret: str | None
    uri: str | None

    def to_dict(self) -> Dict[str, Any]:
        return {"factorId": self.factor_id, "qrCode": self.qr_code, "secret": self.secret, "uri": self.uri}


class IdentityProvider(Protocol):
    def verify_token(self, token: str) -> Principal: ...

    def list_factors(self, principal: Principal) -> List[Factor]: ...

    def enroll_totp(self, principal: Principal, friendly_name: str | None = None) -> TotpEnrollment: ...

    def verify_enrollment(self, principal: Principal, factor_id: str, code: str) -> None: ...

    def unenroll(self, principal: Principal, factor_id: str) -> None: ...


def _read(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def factor_from_provider(raw: Any) -> Factor:
    factor_type = _read(raw, "factor_type") or _read(raw, "type") or ""
    return Factor(
        id=str(_read(raw, "id", "")),
        factor_type=str(factor_type),
        status=str(_read(raw, "status", "")),
        friendly_name=_read(raw, "friendly_name"),
    )


class SupabaseIdentityProvider:
    """Supabase Auth backed provider.

    Token checks and factor listing use the service-role client. Enrolment,
    verification and removal are user-scoped GoTrue calls and are sent with the
    caller's own bearer token.
    """

    def __init__(
        self,
        url: str,
        service_role_key: str,
        *,
        client: Client | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._auth_url = url.rstrip("/") + "/auth/v1"
        self._service_role_key = service_role_key
        self._client = client or create_client(url, service_role_key)
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(10.0))

    def verify_token(self, token: str) -> Principal:
        try:
            response = self._client.auth.get_user(token)
        except (AuthError, httpx.HTTPError) as exc:
            raise AuthenticationError(str(exc) or "Invalid or expired token") from exc
        user = _read(response, "user")
        if user is None or not _read(user, "id"):
            raise AuthenticationError("Invalid or expired token")
        return Principal(id=str(_read(user, "id")), token=token, email=_read(user, "email"))

    def list_factors(self, principal: Principal) -> List[Factor]:
        try:
            response = self._client.auth.admin.mfa.list_factors({"user_id": principal.id})
        except (AuthError, httpx.HTTPError) as exc:
            raise IdentityProviderError(str(exc) or "Unable to list factors") from exc
        return [factor_from_provider(item) for item in (_read(response, "factors") or [])]

    def enroll_totp(self, principal: Principal, friendly_name: str | None = None) -> TotpEnrollment:
        body: Dict[str, Any] = {"factor_type": TOTP}
        if friendly_name:
            body["friendly_name"] = friendly_name
        data = self._user_call("POST", "/factors", principal, json=body)
        totp = data.get("totp") or {}
        return TotpEnrollment(
            factor_id=str(data.get("id", "")),
            qr_code=totp.get("qr_code"),
            secret=totp.get("secret"),
            uri=totp.get("uri"),
        )

    def verify_enrollment(self, principal: Principal, factor_id: str, code: str) -> None:
        challenge = self._user_call("POST", f"/factors/{factor_id}/challenge", principal)
        self._user_call(
            "POST",
            f"/factors/{factor_id}/verify",
            principal,
            json={"challenge_id": challenge.get("id"), "code": code},
        )

    def unenroll(self, principal: Principal, factor_id: str) -> None:
        self._user_call("DELETE", f"/factors/{factor_id}", principal)

    def _user_call(
        self, method: str, path: str, principal: Principal, *, json: Mapping[str, Any] | None = None
    ) -> Dict[str, Any]:
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {principal.token}",
        }
        try:
            response = self._http.request(method, f"{self._auth_url}{path}", headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc) or "Identity provider unreachable") from exc
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = payload.get("msg") or payload.get("message") or payload.get("error_description") or response.text
            raise IdentityProviderError(message or "Identity provider error", status_code=response.status_code)
        if not response.content:
            return {}
        return response.json()


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""

    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    if not token or " " in token:
        return None
    return token


def authenticate(provider: IdentityProvider, header: str | None) -> Principal:
    token = extract_bearer_token(header)
    if token is None:
        raise AuthenticationError("Missing or malformed Authorization header")
    return provider.verify_token(token)


def verified_totp_factors(factors: Sequence[Factor]) -> List[Factor]:
    return [factor for factor in factors if factor.is_verified_totp]


def ensure_second_factor(provider: IdentityProvider, principal: Principal) -> List[Factor]:
    verified = verified_totp_factors(provider.list_factors(principal))
    if not verified:
        raise MFARequiredError("A verified authenticator app is required")
    return verified


def _error(status: int, error: str, code: str, details: str | None = None):
    body: Dict[str, Any] = {"error": error, "code": code}
    if details:
        body["details"] = details
    response = jsonify(body)
    response.status_code = status
    return response


def get_identity_provider() -> IdentityProvider:
    return current_app.extensions[IDENTITY_PROVIDER_EXTENSION]


def require_auth(*, require_mfa: bool = True) -> Callable:
    """Guard a view with the credential check and, by default, the TOTP check."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any):
            log = structlog.get_logger(__name__).bind(path=request.path)
            provider = get_identity_provider()
            try:
                principal = authenticate(provider, request.headers.get("Authorization"))
            except AuthenticationError as exc:
                log.info("auth_rejected", reason=str(exc))
                return _error(401, "Unauthorized", "UNAUTHORIZED", str(exc))
            g.principal = principal
            log = log.bind(user_id=principal.id)
            if require_mfa:
                try:
                    ensure_second_factor(provider, principal)
                except MFARequiredError as exc:
                    log.info("mfa_required")
                    return _error(403, "Multi-factor authentication required", "MFA_REQUIRED", str(exc))
                except IdentityProviderError as exc:
                    log.warning("mfa_lookup_failed", error=str(exc))
                    return _error(502, "Identity provider error", "IDENTITY_PROVIDER_ERROR", str(exc))
            return view(*args, **kwargs)

        return wrapper

    return decorator
