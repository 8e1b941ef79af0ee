"""
Recovery API Tests

End-to-end tests of the HTTP layer: status codes, camelCase payloads and
error mapping, over in-memory stores.
"""

from unittest.mock import AsyncMock, patch

import pytest


ACCOUNT = "a@example.com"
BASE = "/api/v1/recovery"


class TestRequestCodeEndpoint:
    """Tests for POST /recovery/request-code."""

    def test_success(self, api_client, gateway):
        """Verify a code is sent and expiresAt returned."""
        response = api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["expiresAt"].startswith("2026-01-05T09:10:00")
        assert gateway.last_code == "123456"

    def test_account_id_normalized(self, api_client, gateway):
        """Verify mixed-case addresses resolve to the same account."""
        response = api_client.post(f"{BASE}/request-code", json={"accountId": "A@Example.COM"})

        assert response.status_code == 200
        assert gateway.sent[0][0] == ACCOUNT

    def test_rate_limited(self, api_client, clock):
        """Verify the second request gets 429 with retryAfterSeconds."""
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})
        clock.advance(seconds=20)

        response = api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        assert response.status_code == 429
        assert response.json() == {
            "success": False,
            "error": "RateLimited",
            "message": "Please wait 100 seconds before requesting another code",
            "retryAfterSeconds": 100,
        }
        assert response.headers["retry-after"] == "100"

    def test_delivery_failed(self, api_client, gateway):
        gateway.fail_with = "provider down"

        response = api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        assert response.status_code == 502
        assert response.json()["error"] == "DeliveryFailed"

    def test_unknown_account_looks_the_same(self, api_client, gateway):
        """Verify unknown addresses get a success answer and nothing is sent."""
        response = api_client.post(f"{BASE}/request-code", json={"accountId": "ghost@example.com"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert gateway.sent == []

    def test_invalid_email_rejected(self, api_client):
        response = api_client.post(f"{BASE}/request-code", json={"accountId": "not-an-email"})

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"


class TestVerifyCodeEndpoint:
    """Tests for POST /recovery/verify-code."""

    def test_success(self, api_client):
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        response = api_client.post(
            f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "123456"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["attemptsRemaining"] == 2

    def test_invalid_then_exhausted(self, api_client):
        """Verify the scenario of three misses followed by the correct code."""
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        remaining = []
        for _ in range(3):
            response = api_client.post(
                f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "000000"}
            )
            assert response.status_code == 400
            assert response.json()["error"] == "Invalid"
            remaining.append(response.json()["attemptsRemaining"])

        response = api_client.post(
            f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "123456"}
        )

        assert remaining == [2, 1, 0]
        assert response.status_code == 403
        assert response.json()["error"] == "AttemptsExhausted"

    @pytest.mark.parametrize(
        "advance_minutes, status_code, error",
        [
            (None, 404, "NotFound"),
            (10, 410, "Expired"),
        ],
    )
    def test_terminal_errors(self, api_client, clock, advance_minutes, status_code, error):
        if advance_minutes is not None:
            api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})
            clock.advance(minutes=advance_minutes)

        response = api_client.post(
            f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "123456"}
        )

        assert response.status_code == status_code
        assert response.json()["success"] is False
        assert response.json()["error"] == error

    def test_malformed_code_rejected(self, api_client):
        """Verify codes must be exactly six digits."""
        response = api_client.post(
            f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "12345"}
        )

        assert response.status_code == 422


class TestResetPasswordEndpoint:
    """Tests for POST /recovery/reset-password."""

    def test_round_trip_then_replay(self, api_client, credential_store):
        """Verify request, verify and reset succeed once, then AlreadyUsed."""
        payload = {"accountId": ACCOUNT, "code": "123456", "newCredential": "correct-horse-42"}
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})
        api_client.post(f"{BASE}/verify-code", json={"accountId": ACCOUNT, "code": "123456"})

        first = api_client.post(f"{BASE}/reset-password", json=payload)
        second = api_client.post(f"{BASE}/reset-password", json=payload)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert credential_store.password_hash_for(ACCOUNT).startswith("$2")
        assert second.status_code == 409
        assert second.json()["error"] == "AlreadyUsed"

    def test_weak_credential(self, api_client):
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        response = api_client.post(
            f"{BASE}/reset-password",
            json={"accountId": ACCOUNT, "code": "123456", "newCredential": "password"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "WeakCredential"


class TestResendCodeEndpoint:
    """Tests for POST /recovery/resend-code."""

    def test_resends_after_cooldown(self, api_client, gateway, clock):
        api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})
        clock.advance(minutes=2)

        response = api_client.post(f"{BASE}/resend-code", json={"accountId": ACCOUNT})

        assert response.status_code == 200
        assert [code for _, code, _ in gateway.sent] == ["123456", "123456"]

    def test_nothing_to_resend(self, api_client):
        response = api_client.post(f"{BASE}/resend-code", json={"accountId": ACCOUNT})

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"


class TestInfrastructureErrors:
    """Tests for storage outages."""

    def test_store_unavailable_is_503(self, api_client, otp_store):
        """Verify storage failures are reported as retryable, not as denials."""
        from recovery.core.exceptions import StoreUnavailableError

        with patch.object(
            otp_store,
            "claim_request_slot",
            AsyncMock(side_effect=StoreUnavailableError("db down")),
        ):
            response = api_client.post(f"{BASE}/request-code", json={"accountId": ACCOUNT})

        assert response.status_code == 503
        assert response.json()["error"] == "ServiceUnavailable"
        assert "retry-after" in response.headers


class TestHealth:

    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
