"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface with the FastAPI TestClient against the in-memory
fixture database.

These tests verify:
- Auth guards on member, admin and job endpoints
- Response shapes the client apps rely on
- Domain failures answered as ``400 {"error": reason}``
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import patch

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import add_collection, add_profile, auth, make_admin_token, make_token
from joyrewards.database.models import DailyScratchCard, Profile, TimeTrialBest

CRON = {"X-Cron-Secret": "test-cron-secret"}


@pytest.fixture
def member():
    return auth(make_token("member-1"))


@pytest.fixture
def admin():
    return auth(make_admin_token())


# ===========================================================================
# Health & auth guards
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuthGuards:
    MEMBER_GET_ENDPOINTS = [
        "/api/coins/balance",
        "/api/coins/transactions",
        "/api/stickers/today",
        "/api/stickers/album",
        "/api/streaks",
    ]

    ADMIN_GET_ENDPOINTS = [
        "/api/admin/rewards",
        "/api/admin/milestones",
        "/api/admin/audit",
        "/api/admin/users/member-1/transactions",
    ]

    @pytest.mark.parametrize("endpoint", MEMBER_GET_ENDPOINTS)
    def test_member_endpoints_require_token(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", MEMBER_GET_ENDPOINTS)
    def test_member_endpoints_reject_invalid_token(self, client, endpoint):
        resp = client.get(endpoint, headers={"Authorization": "Bearer invalid"})
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_endpoints_reject_no_auth(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_endpoints_reject_member(self, client, member, endpoint):
        assert client.get(endpoint, headers=member).status_code == 403

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_endpoints_accept_admin(self, client, admin, endpoint):
        assert client.get(endpoint, headers=admin).status_code == 200

    def test_token_without_subject(self, client):
        import jwt

        from joyrewards.api.deps import JWT_ALGORITHM, JWT_SECRET

        token = jwt.encode({"name": "ghost"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        assert client.get("/api/coins/balance", headers=auth(token)).status_code == 401


# ===========================================================================
# Coins
# ===========================================================================
class TestCoins:
    def test_balance_and_history(self, client, db_engine, member):
        add_profile(db_engine, "member-1", coins=12)

        balance = client.get("/api/coins/balance", headers=member).json()
        history = client.get("/api/coins/transactions", headers=member).json()

        assert balance == {"user_id": "member-1", "balance": 12}
        assert history["total"] == 1
        assert history["transactions"][0]["amount"] == 12

    def test_claim_reward(self, client, member):
        resp = client.post(
            "/api/coins/rewards/memory_match_complete", json={}, headers=member
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"]
        assert body["coins_awarded"] == 10
        assert body["balance"] == 10
        assert body["message"] == "+10 coins!"

    def test_claim_reward_with_source_is_idempotent(self, client, member):
        payload = {"source_id": "chore-7"}
        first = client.post("/api/coins/rewards/chore_completed", json=payload, headers=member)
        second = client.post("/api/coins/rewards/chore_completed", json=payload, headers=member)

        assert first.json()["coins_awarded"] == 5
        assert second.json()["coins_awarded"] == 0
        assert second.json()["duplicate"]

    def test_unknown_reward_pays_nothing(self, client, member):
        body = client.post("/api/coins/rewards/not_a_reward", json={}, headers=member).json()
        assert body["coins_awarded"] == 0
        assert body["message"] is None


# ===========================================================================
# Stickers
# ===========================================================================
class TestStickers:
    def test_today_then_scratch(self, client, db_engine, member):
        _, (only,) = add_collection(db_engine, [1.0])

        today = client.get("/api/stickers/today", headers=member).json()
        (card,) = today["cards"]
        resp = client.post(f"/api/stickers/cards/{card['id']}/scratch", headers=member)

        assert resp.status_code == 200
        body = resp.json()
        assert set(body) == {"success", "sticker", "isDuplicate", "quantity", "isComplete"}
        assert body["sticker"]["id"] == only
        assert body["isComplete"] is True

        again = client.post(f"/api/stickers/cards/{card['id']}/scratch", headers=member)
        assert again.status_code == 400
        assert again.json() == {"error": "already scratched"}

    def test_scratch_with_card_id_body(self, client, db_engine, member):
        _, (only,) = add_collection(db_engine, [1.0])
        card = client.get("/api/stickers/today", headers=member).json()["cards"][0]

        resp = client.post("/api/stickers/scratch", json={"card_id": card["id"]}, headers=member)

        assert resp.status_code == 200
        body = resp.json()
        assert set(body) == {"success", "sticker", "isDuplicate", "quantity", "isComplete"}
        assert body["sticker"]["id"] == only
        assert body["quantity"] == 1

        again = client.post("/api/stickers/scratch", json={"card_id": card["id"]}, headers=member)
        assert again.status_code == 400
        assert again.json() == {"error": "already scratched"}

    def test_scratch_body_requires_card_id(self, client, member):
        assert client.post("/api/stickers/scratch", json={}, headers=member).status_code == 422

    def test_expired_card(self, client, db_engine, member):
        add_collection(db_engine)
        card = client.get("/api/stickers/today", headers=member).json()["cards"][0]
        with Session(db_engine) as session:
            session.execute(
                update(DailyScratchCard)
                .where(DailyScratchCard.id == card["id"])
                .values(expires_at=datetime(2020, 1, 1, tzinfo=UTC))
            )
            session.commit()

        resp = client.post(f"/api/stickers/cards/{card['id']}/scratch", headers=member)

        assert resp.status_code == 400
        assert resp.json() == {"error": "expired"}

    def test_someone_elses_card(self, client, db_engine, member):
        add_collection(db_engine)
        other = auth(make_token("member-2"))
        card = client.get("/api/stickers/today", headers=other).json()["cards"][0]

        resp = client.post(f"/api/stickers/cards/{card['id']}/scratch", headers=member)
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_buy_bonus_card(self, client, db_engine, member):
        add_collection(db_engine)
        add_profile(db_engine, "member-1", coins=60)

        resp = client.post("/api/stickers/bonus-cards", headers=member)

        assert resp.status_code == 200
        assert resp.json()["cost"] == 50
        assert resp.json()["balance"] == 10

        broke = client.post("/api/stickers/bonus-cards", headers=member)
        assert broke.status_code == 400

    def test_not_enough_coins(self, client, db_engine, member):
        add_collection(db_engine)
        resp = client.post("/api/stickers/bonus-cards", headers=member)
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Not enough coins!")

    def test_progress_and_album(self, client, db_engine, member):
        collection_id, _ = add_collection(db_engine, [1.0, 1.0])

        progress = client.get(
            f"/api/stickers/collections/{collection_id}/progress", headers=member
        ).json()
        album = client.get("/api/stickers/album", headers=member).json()

        assert progress == {
            "collection_id": collection_id,
            "owned": 0,
            "total": 2,
            "percentage": 0,
            "is_complete": False,
        }
        assert album == {"collections": []}


# ===========================================================================
# Streaks, wheel, time trials
# ===========================================================================
class TestStreaksAndGames:
    def test_claim_twice(self, client, member):
        first = client.post("/api/streaks/claim", headers=member).json()
        second = client.post("/api/streaks/claim", headers=member).json()

        assert first["success"]
        assert first["current_streak"] == 1
        assert not second["success"]
        assert second["reason"] == "already_logged_today"

    def test_wheel_status_tracks_todays_spin(self, client, member):
        before = client.get("/api/chore-wheel", headers=member).json()
        client.post("/api/chore-wheel/spin", headers=member)
        after = client.get("/api/chore-wheel", headers=member).json()

        assert before["can_spin"] is True
        assert before["segments"]
        assert after["can_spin"] is False

    def test_wheel_second_spin_refused(self, client, member):
        assert client.post("/api/chore-wheel/spin", headers=member).status_code == 200
        again = client.post("/api/chore-wheel/spin", headers=member)
        assert again.status_code == 400
        assert again.json() == {"error": "already spun today"}

    def test_time_trial_submit_and_board(self, client, member):
        resp = client.post(
            "/api/time-trials",
            json={"duration_seconds": 60, "levels": 4, "score": 120},
            headers=member,
        )
        board = client.get("/api/time-trials/60/leaderboard", headers=member).json()

        assert resp.json()["new_best"]
        assert board["entries"][0]["user_id"] == "member-1"

    def test_time_trial_unknown_duration(self, client, member):
        resp = client.post(
            "/api/time-trials",
            json={"duration_seconds": 45, "levels": 1, "score": 1},
            headers=member,
        )
        assert resp.status_code == 400
        assert client.get("/api/time-trials/45/leaderboard", headers=member).status_code == 404


# ===========================================================================
# Jobs
# ===========================================================================
class TestJobs:
    def test_leaderboard_job_requires_caller(self, client):
        assert client.post("/api/jobs/leaderboard-rewards").status_code == 401
        bad = client.post("/api/jobs/leaderboard-rewards", headers={"X-Cron-Secret": "nope"})
        assert bad.status_code == 401

    def test_leaderboard_job_member_forbidden(self, client, member):
        assert client.post("/api/jobs/leaderboard-rewards", headers=member).status_code == 403

    def test_leaderboard_job_pays_and_reruns_safely(self, client, db_engine):
        add_profile(db_engine, "champ")
        with Session(db_engine) as session:
            session.add(TimeTrialBest(
                user_id="champ", duration_seconds=60, best_levels=9, best_score=1
            ))
            session.commit()

        body = {"reward_month": "2026-02"}
        first = client.post("/api/jobs/leaderboard-rewards", json=body, headers=CRON)
        second = client.post("/api/jobs/leaderboard-rewards", json=body, headers=CRON)

        assert first.status_code == 200
        assert first.json()["rewardMonth"] == "2026-02"
        assert first.json()["totalAwarded"] == 1
        assert first.json()["totalCoins"] == 170
        assert second.json()["totalAwarded"] == 0

    def test_leaderboard_job_validates_month(self, client):
        resp = client.post(
            "/api/jobs/leaderboard-rewards", json={"reward_month": "2026-13"}, headers=CRON
        )
        assert resp.status_code == 422

    def test_leaderboard_job_by_admin(self, client, admin):
        resp = client.post("/api/jobs/leaderboard-rewards", headers=admin)
        assert resp.status_code == 200
        assert resp.json()["totalAwarded"] == 0

    def test_reconcile_job(self, client, db_engine):
        add_profile(db_engine, "u1", coins=5)
        with Session(db_engine) as session:
            session.execute(update(Profile).where(Profile.id == "u1").values(coins=9))
            session.commit()

        report = client.post("/api/jobs/reconcile-balances", headers=CRON).json()
        assert report["drifted"] == 1

        repaired = client.post(
            "/api/jobs/reconcile-balances?repair=true", headers=CRON
        ).json()
        assert repaired["repaired"]

    def test_job_failure_hides_internal_error(self, client):
        leak = "password authentication failed for user joy at db.internal:5432"
        with patch(
            "joyrewards.services.leaderboard_service.award_monthly_rewards",
            side_effect=OperationalError("SELECT 1", {}, Exception(leak)),
        ):
            resp = client.post("/api/jobs/leaderboard-rewards", headers=CRON)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Leaderboard rewards job failed"}
        assert "db.internal" not in resp.text

    def test_reconcile_failure_hides_internal_error(self, client):
        with patch(
            "joyrewards.services.reconciliation_service.reconcile_balances",
            side_effect=RuntimeError("relation \"profiles\" does not exist"),
        ):
            resp = client.post("/api/jobs/reconcile-balances", headers=CRON)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Ledger reconciliation job failed"}


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminRoutes:
    def test_create_reward_conflict(self, client, admin):
        payload = {"reward_key": "daily_login", "reward_name": "Dup", "coin_amount": 1}
        assert client.post("/api/admin/rewards", json=payload, headers=admin).status_code == 409

    def test_create_and_patch_reward(self, client, admin, member):
        created = client.post(
            "/api/admin/rewards",
            json={"reward_key": "garden", "reward_name": "Garden", "coin_amount": 4},
            headers=admin,
        )
        assert created.status_code == 200

        patched = client.patch(
            "/api/admin/rewards/garden", json={"coin_amount": 6}, headers=admin
        )
        assert patched.json()["coin_amount"] == 6

        paid = client.post("/api/coins/rewards/garden", json={}, headers=member).json()
        assert paid["coins_awarded"] == 6

    def test_patch_missing_reward(self, client, admin):
        resp = client.patch("/api/admin/rewards/nope", json={"coin_amount": 1}, headers=admin)
        assert resp.status_code == 404

    def test_duplicate_milestone_days(self, client, admin):
        resp = client.post(
            "/api/admin/milestones",
            json={"days_required": 7, "badge_name": "Again"},
            headers=admin,
        )
        assert resp.status_code == 409

    def test_settings_and_audit(self, client, admin):
        resp = client.put(
            "/api/admin/settings",
            json=[{"key": "scratch.bonus_card_base_cost", "value": 80}],
            headers=admin,
        )
        assert resp.json() == {"updated": 1}

        audit = client.get("/api/admin/audit", headers=admin).json()
        assert audit["total"] == 1
        assert audit["entries"][0]["target_id"] == "scratch.bonus_card_base_cost"

    def test_manual_adjust(self, client, admin):
        granted = client.post(
            "/api/admin/coins/adjust",
            json={"user_id": "member-9", "amount": 30, "reason": "Helped out"},
            headers=admin,
        )
        refused = client.post(
            "/api/admin/coins/adjust",
            json={"user_id": "member-9", "amount": -100, "reason": "Too much"},
            headers=admin,
        )
        zero = client.post(
            "/api/admin/coins/adjust",
            json={"user_id": "member-9", "amount": 0},
            headers=admin,
        )

        assert granted.status_code == 200
        assert granted.json()["balance"] == 30
        assert granted.json()["transaction_id"] is not None
        assert refused.status_code == 400
        assert zero.status_code == 400
