"""Tests for the second-factor management endpoints."""

from conftest import AUTH_HEADERS, NO_MFA_TOKEN, VALID_CODE

NEW_USER = {"Authorization": f"Bearer {NO_MFA_TOKEN}"}


def test_status_lists_totp_factors(client):
    response = client.get("/api/mfa/status", headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {
        "enabled": True,
        "factors": [{"id": "factor-1", "friendlyName": "Phone", "factorType": "totp", "status": "verified"}],
    }


def test_status_does_not_require_a_second_factor(client):
    response = client.get("/api/mfa/status", headers=NEW_USER)

    assert response.status_code == 200
    assert response.get_json() == {"enabled": False, "factors": []}


def test_status_still_requires_a_credential(client):
    assert client.get("/api/mfa/status").status_code == 401


def test_enrollment_then_verification_unlocks_protected_routes(client):
    assert client.get("/api/enhancements", headers=NEW_USER).status_code == 403

    enrolled = client.post("/api/mfa/enroll", json={"friendlyName": "Laptop"}, headers=NEW_USER)
    assert enrolled.status_code == 200
    enrollment = enrolled.get_json()
    assert enrollment["factorId"]
    assert enrollment["secret"]
    assert enrollment["uri"].startswith("otpauth://")
    assert enrollment["qrCode"]

    verified = client.post(
        "/api/mfa/verify-enrollment",
        json={"factorId": enrollment["factorId"], "code": VALID_CODE},
        headers=NEW_USER,
    )
    assert verified.status_code == 200
    assert verified.get_json()["verified"] is True

    assert client.get("/api/enhancements", headers=NEW_USER).status_code == 200


def test_verification_requires_factor_and_code(client):
    response = client.post("/api/mfa/verify-enrollment", json={"code": VALID_CODE}, headers=NEW_USER)

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields", "details": ["factorId"]}


def test_wrong_code_is_rejected(client):
    enrollment = client.post("/api/mfa/enroll", json={}, headers=NEW_USER).get_json()

    response = client.post(
        "/api/mfa/verify-enrollment",
        json={"factorId": enrollment["factorId"], "code": "000000"},
        headers=NEW_USER,
    )

    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_CODE"
    assert client.get("/api/enhancements", headers=NEW_USER).status_code == 403


def test_disable_removes_every_totp_factor(client, identity_provider):
    response = client.delete("/api/mfa/disable", headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {"removed": ["factor-1"]}
    assert identity_provider.factors["user-1"] == []
    assert client.get("/api/enhancements", headers=AUTH_HEADERS).status_code == 403


def test_disable_single_factor(client, identity_provider):
    client.post("/api/mfa/enroll", json={"friendlyName": "Backup"}, headers=AUTH_HEADERS)

    response = client.delete("/api/mfa/disable", json={"factorId": "factor-1"}, headers=AUTH_HEADERS)

    assert response.get_json() == {"removed": ["factor-1"]}
    assert [f.friendly_name for f in identity_provider.factors["user-1"]] == ["Backup"]
