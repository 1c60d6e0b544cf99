"""
API tests for TradeVault endpoints
"""
import pytest
from decimal import Decimal

from tradevault.core.config import settings


class TestHealthEndpoints:
    """Test health and root endpoints"""

    @pytest.mark.integration
    async def test_health_check(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.integration
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert "docs" in response.json()


class TestAuthEndpoints:

    @pytest.mark.integration
    async def test_register_login_and_overview(self, client):
        response = await client.post("/api/v1/users/register", json={
            "username": "newcomer",
            "email": "newcomer@example.com",
            "password": "Sup3rSecret"
        })
        assert response.status_code == 201
        assert response.json()["credit_score"] == 100

        response = await client.post("/api/v1/users/login", json={
            "email": "newcomer@example.com",
            "password": "Sup3rSecret"
        })
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        data = response.json()
        assert data["kyc_status"] == "not_submitted"
        assert data["can_withdraw"] is True
        assert data["balances"] == []

    @pytest.mark.integration
    async def test_weak_password(self, client):
        response = await client.post("/api/v1/users/register", json={
            "username": "weak",
            "email": "weak@example.com",
            "password": "alllowercase"
        })
        assert response.status_code == 400

    @pytest.mark.integration
    async def test_wrong_password(self, client, test_user):
        response = await client.post("/api/v1/users/login", json={
            "email": "verified@example.com",
            "password": "WrongPassword1"
        })
        assert response.status_code == 401

    @pytest.mark.integration
    async def test_logout_revokes_token(self, client, auth_headers, redis_mock):
        response = await client.post("/api/v1/users/logout", headers=auth_headers)

        assert response.status_code == 200
        redis_mock.setex.assert_awaited_once()
        key = redis_mock.setex.await_args.args[0]
        assert key == "blacklist:" + auth_headers["Authorization"].split(" ", 1)[1]

    @pytest.mark.integration
    async def test_revoked_token_is_refused(self, client, auth_headers, redis_mock):
        redis_mock.get.return_value = "1"

        response = await client.get("/api/v1/users/me", headers=auth_headers)
        assert response.status_code == 401

    @pytest.mark.integration
    async def test_requires_token(self, client):
        response = await client.get("/api/v1/wallet")
        assert response.status_code == 401


class TestLoanEndpoints:

    @pytest.mark.integration
    async def test_policy_and_quote(self, client):
        policy = (await client.get("/api/v1/loans/policy")).json()
        assert Decimal(policy["min_amount"]) == Decimal("5000")
        assert policy["repayment_priority"] == ["penalty", "interest", "principal"]

        response = await client.post("/api/v1/loans/quote", json={"amount": "10000", "days": 20})
        assert response.status_code == 200
        quote = response.json()
        assert Decimal(quote["interest"]) == Decimal("800")
        assert Decimal(quote["penalty"]) == Decimal("1000")
        assert Decimal(quote["total"]) == Decimal("11800")

    @pytest.mark.integration
    async def test_apply_errors_are_typed(self, client, auth_headers, unverified_headers):
        response = await client.post("/api/v1/loans/apply", json={"amount": "3000"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "OutOfRange"

        response = await client.post("/api/v1/loans/apply", json={"amount": "5000"}, headers=unverified_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "NotVerified"

        response = await client.post(
            "/api/v1/loans/apply", json={"amount": "5000", "guarantor_id": 4242}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidGuarantor"

    @pytest.mark.integration
    async def test_apply_approve_and_repay(self, client, auth_headers, admin_headers):
        response = await client.post("/api/v1/loans/apply", json={"amount": "6000"}, headers=auth_headers)
        assert response.status_code == 201
        loan_id = response.json()["id"]

        response = await client.post(f"/api/v1/admin/applications/loan/{loan_id}/approve", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

        detail = (await client.get(f"/api/v1/loans/{loan_id}", headers=auth_headers)).json()
        assert detail["effective_status"] == "approved"
        assert detail["full_repayment_type"] == "early_full"
        assert Decimal(detail["remaining"]["total"]) == Decimal("6000")

        response = await client.post(
            f"/api/v1/loans/{loan_id}/repayments",
            data={"repayment_type": "full"},
            files={"receipt": ("receipt.png", b"\x89PNG fake image", "image/png")},
            headers=auth_headers
        )
        assert response.status_code == 201
        repayment = response.json()
        assert repayment["repayment_type"] == "early_full"
        assert Decimal(repayment["amount"]) == Decimal("6000")
        assert repayment["receipt_image_url"]

        response = await client.post(
            f"/api/v1/admin/applications/repayment/{repayment['id']}/approve", headers=admin_headers
        )
        assert response.status_code == 200

        detail = (await client.get(f"/api/v1/loans/{loan_id}", headers=auth_headers)).json()
        assert detail["loan"]["status"] == "repaid"

    @pytest.mark.integration
    async def test_receipt_size_limit(self, client, auth_headers, admin_headers):
        loan_id = (await client.post("/api/v1/loans/apply", json={"amount": "6000"}, headers=auth_headers)).json()["id"]
        await client.post(f"/api/v1/admin/applications/loan/{loan_id}/approve", headers=admin_headers)

        response = await client.post(
            f"/api/v1/loans/{loan_id}/repayments",
            data={"repayment_type": "partial", "amount": "100"},
            files={"receipt": ("receipt.png", b"0" * (settings.MAX_UPLOAD_BYTES + 1), "image/png")},
            headers=auth_headers
        )
        assert response.status_code == 413
        assert response.json()["error"] == "PayloadTooLarge"

        repayments = (await client.get(f"/api/v1/loans/{loan_id}/repayments", headers=auth_headers)).json()
        assert repayments == []

    @pytest.mark.integration
    async def test_other_users_loans_are_hidden(self, client, auth_headers, unverified_headers):
        loan_id = (await client.post("/api/v1/loans/apply", json={"amount": "6000"}, headers=auth_headers)).json()["id"]

        response = await client.get(f"/api/v1/loans/{loan_id}", headers=unverified_headers)
        assert response.status_code == 404


class TestWalletAndCreditEndpoints:

    @pytest.mark.integration
    async def test_withdraw_holds_funds(self, client, funded_user, auth_headers):
        response = await client.post("/api/v1/wallet/withdraw", json={
            "amount": "250",
            "address": "TXYZ1234567890abcdef",
            "network": "TRC20"
        }, headers=auth_headers)
        assert response.status_code == 201
        assert Decimal(response.json()["fee"]) == Decimal("1.25")

        assets = (await client.get("/api/v1/wallet", headers=auth_headers)).json()["assets"]
        assert Decimal(assets[0]["frozen_balance"]) == Decimal("250")

    @pytest.mark.integration
    async def test_third_trade_is_rate_limited(self, client, auth_headers):
        for expected in (1, 2):
            response = await client.post("/api/v1/credit/trade-check", headers=auth_headers)
            assert response.status_code == 200
            assert response.json()["attempts_in_window"] == expected

        response = await client.post("/api/v1/credit/trade-check", headers=auth_headers)
        assert response.status_code == 429

        credit = (await client.get("/api/v1/credit", headers=auth_headers)).json()
        assert credit["credit_score"] == 90
        assert credit["can_withdraw"] is False
        assert credit["logs"][0]["rule"] == "trade_limit"

    @pytest.mark.integration
    async def test_deposit_needs_admin_confirmation(self, client, auth_headers, admin_headers):
        response = await client.post(
            "/api/v1/wallet/deposit",
            data={"amount": "700", "network": "TRC20", "tx_hash": "0xfeed"},
            headers=auth_headers
        )
        assert response.status_code == 201
        txn_id = response.json()["id"]

        queue = (await client.get("/api/v1/admin/applications?type=deposit", headers=admin_headers)).json()
        assert [a["id"] for a in queue["applications"]] == [txn_id]

        await client.post(f"/api/v1/admin/applications/deposit/{txn_id}/approve", headers=admin_headers)

        assets = (await client.get("/api/v1/wallet", headers=auth_headers)).json()["assets"]
        assert Decimal(assets[0]["balance"]) == Decimal("700")

        unread = (await client.get("/api/v1/notifications/unread-count", headers=auth_headers)).json()
        assert unread["unread_count"] == 1
        await client.put("/api/v1/notifications/read-all", headers=auth_headers)
        unread = (await client.get("/api/v1/notifications/unread-count", headers=auth_headers)).json()
        assert unread["unread_count"] == 0


class TestKYCAndMiningEndpoints:

    @pytest.mark.integration
    async def test_kyc_submission(self, client, unverified_headers):
        response = await client.post(
            "/api/v1/kyc/submit",
            data={"real_name": "Jane Doe", "id_type": "passport", "id_number": "P7654321"},
            files={"front_image": ("front.jpg", b"jpeg bytes", "image/jpeg")},
            headers=unverified_headers
        )
        assert response.status_code == 201

        status = (await client.get("/api/v1/kyc", headers=unverified_headers)).json()
        assert status["status"] == "pending"
        assert status["is_verified"] is False

        response = await client.post(
            "/api/v1/kyc/submit",
            data={"real_name": "Jane Doe", "id_type": "passport", "id_number": "P7654321"},
            headers=unverified_headers
        )
        assert response.status_code == 409

    @pytest.mark.integration
    async def test_mining_tiers(self, client, auth_headers):
        data = (await client.get("/api/v1/mining/tiers", headers=auth_headers)).json()

        assert [t["lock_days"] for t in data["tiers"]] == [15, 30, 60]
        assert data["is_eligible"] is False


class TestTradeEndpoints:

    @pytest.mark.integration
    async def test_options(self, client):
        options = (await client.get("/api/v1/trades/options")).json()["options"]

        assert [(o["duration_minutes"], Decimal(o["profit_rate"])) for o in options] == [
            (1, Decimal("0.10")), (3, Decimal("0.20")), (5, Decimal("0.30")), (15, Decimal("0.40"))
        ]

    @pytest.mark.integration
    async def test_place_and_admin_settle(self, client, funded_user, auth_headers, admin_headers):
        response = await client.post("/api/v1/trades", json={
            "symbol": "btcusdt",
            "direction": "long",
            "amount": "500",
            "duration_minutes": 15,
            "entry_price": "64250.5"
        }, headers=auth_headers)
        assert response.status_code == 201
        trade = response.json()
        assert trade["symbol"] == "BTCUSDT"
        assert trade["status"] == "pending"

        response = await client.post(f"/api/v1/trades/{trade['id']}/settle", headers=auth_headers)
        assert response.status_code == 409

        queue = (await client.get("/api/v1/admin/applications?type=trade", headers=admin_headers)).json()
        assert [a["id"] for a in queue["applications"]] == [trade["id"]]

        response = await client.put(
            f"/api/v1/admin/trades/{trade['id']}/outcome", json={"outcome": "win"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "won"
        assert response.json()["outcome_source"] == "admin"

        assets = (await client.get("/api/v1/wallet", headers=auth_headers)).json()["assets"]
        assert Decimal(assets[0]["balance"]) == Decimal("20200")

        history = (await client.get("/api/v1/trades", headers=auth_headers)).json()
        assert history["total"] == 1
        assert Decimal(history["trades"][0]["payout"]) == Decimal("700")

    @pytest.mark.integration
    async def test_unsupported_duration(self, client, funded_user, auth_headers):
        response = await client.post("/api/v1/trades", json={
            "symbol": "ETHUSDT",
            "direction": "short",
            "amount": "100",
            "duration_minutes": 7,
            "entry_price": "3100"
        }, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "OutOfRange"

    @pytest.mark.integration
    async def test_trade_mode(self, client, funded_user, auth_headers, admin_headers):
        trade_id = (await client.post("/api/v1/trades", json={
            "symbol": "ETHUSDT",
            "direction": "short",
            "amount": "100",
            "duration_minutes": 1,
            "entry_price": "3100"
        }, headers=auth_headers)).json()["id"]

        response = await client.put(
            f"/api/v1/admin/users/{funded_user.id}/trade-mode", json={"mode": "always_lose"}, headers=admin_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "always_lose"
        assert [t["id"] for t in body["settled"]] == [trade_id]
        assert body["settled"][0]["status"] == "lost"

        logs = (await client.get("/api/v1/admin/audit-logs?action=set_trade_mode", headers=admin_headers)).json()
        assert logs["total"] == 1


class TestAdminEndpoints:

    @pytest.mark.integration
    async def test_requires_admin_role(self, client, auth_headers):
        response = await client.get("/api/v1/admin/applications", headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.integration
    async def test_freeze_blocks_money_movement(self, client, test_user, auth_headers, admin_headers):
        user_id = test_user.id
        response = await client.put(
            f"/api/v1/admin/users/{user_id}/freeze", json={"is_frozen": True}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["is_frozen"] is True

        response = await client.post("/api/v1/loans/apply", json={"amount": "5000"}, headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "AccountFrozen"

    @pytest.mark.integration
    async def test_overdue_sweep_and_audit_log(self, client, admin_headers):
        response = await client.post("/api/v1/admin/loans/overdue-sweep", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"checked": 0, "marked_overdue": 0, "credit_deductions": 0}

        logs = (await client.get("/api/v1/admin/audit-logs", headers=admin_headers)).json()
        assert logs["total"] == 1
        assert logs["logs"][0]["action"] == "overdue_sweep"

    @pytest.mark.integration
    async def test_recharge_address_is_published(self, client, auth_headers, admin_headers):
        response = await client.put(
            "/api/v1/admin/config/recharge-address",
            json={"network": "trc20", "address": "TPlatformAddress01"},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["key"] == "recharge_address_TRC20"

        addresses = (await client.get("/api/v1/wallet/recharge-addresses", headers=auth_headers)).json()
        assert addresses == [{"network": "TRC20", "address": "TPlatformAddress01"}]
