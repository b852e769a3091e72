import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import groupmatch.main as m
from groupmatch import config as app_config


def _profile(user_id: str, **overrides):
    row = {
        "id": user_id,
        "first_name": user_id.title(),
        "last_name": "Test",
        "medical_specialty": ["Pediatrics"],
        "city": "Riyadh",
        "gender": "female",
        "gender_preference": "no-preference",
        "other_interests": ["Hiking"],
        "availability_slots": ["fri_evening"],
        "is_verified": True,
        "is_paid": True,
        "is_banned": False,
        "onboarding_completed": True,
        "active_group_until": None,
    }
    row.update(overrides)
    return row


class _Result:
    def __init__(self, rows=None, rowcount=1):
        self._rows = rows or []
        self.rowcount = rowcount

    def mappings(self):
        return self

    def all(self):
        return self._rows

    def first(self):
        return self._rows[0] if self._rows else None


class _Nested:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, store):
        self.store = store

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def begin_nested(self):
        return _Nested()

    def commit(self):
        self.store["commits"] += 1

    def execute(self, stmt, params=None):
        sql = " ".join(str(stmt).split())
        self.store["sql"].append(sql)
        if "COUNT(1) AS c FROM matches" in sql:
            return _Result([{"c": self.store["existing_groups"]}])
        if "FROM profiles" in sql:
            return _Result(self.store["profiles"])
        if "FROM match_members mm JOIN matches" in sql:
            return _Result([])
        if "FROM matching_logs" in sql:
            return _Result([])
        if "INSERT INTO matching_logs" in sql:
            self.store["run_logs"].append(params)
        return _Result()


@pytest.fixture()
def store(monkeypatch):
    data = {"profiles": [], "existing_groups": 0, "sql": [], "run_logs": [], "commits": 0}
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "SessionLocal", lambda: _FakeSession(data))
    monkeypatch.setattr(app_config, "ADMIN_TOKEN", "admin-secret")
    monkeypatch.setattr(app_config, "CRON_SECRET", "cron-secret")
    monkeypatch.setattr(app_config, "DEV_MODE", False)
    return data


ADMIN = {"X-Admin-Token": "admin-secret"}
CRON = {"Authorization": "Bearer cron-secret"}


def test_health(store):
    client = TestClient(m.app)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_admin_run_requires_token(store):
    client = TestClient(m.app)
    assert client.post("/admin/matching/run").status_code == 401
    assert client.post("/admin/matching/run", headers={"X-Admin-Token": "wrong"}).status_code == 401


def test_admin_run_creates_and_persists_groups(store):
    store["profiles"] = [_profile("a"), _profile("b"), _profile("c"), _profile("d"), _profile("e", is_paid=False)]
    client = TestClient(m.app)
    res = client.post("/admin/matching/run", headers=ADMIN)
    assert res.status_code == 200
    body = res.json()
    assert body["groups_created"] == 1
    assert body["eligible_users"] == 4
    assert body["unmatched_users"] == 1
    assert body["excluded"] == {"e": "not_paid"}
    assert body["groups"][0]["member_count"] == 3
    assert body["groups"][0]["compatibility"]["level"] in {"excellent", "great", "good", "decent", "moderate"}
    assert len(body["persist_report"]["persisted"]) == 1
    assert any("INSERT INTO matches" in s for s in store["sql"])
    assert any("INSERT INTO chat_messages" in s for s in store["sql"])
    assert store["run_logs"][0]["trigger"] == "admin"
    assert store["commits"] == 1


def test_admin_run_with_no_groups_is_ok(store):
    store["profiles"] = [_profile("a"), _profile("b")]
    client = TestClient(m.app)
    res = client.post("/admin/matching/run", headers=ADMIN)
    assert res.status_code == 200
    assert res.json()["groups_created"] == 0
    assert res.json()["message"] == "No matches created"


def test_admin_run_skips_week_that_already_has_groups(store):
    store["existing_groups"] = 3
    client = TestClient(m.app)
    res = client.post("/admin/matching/run", headers=ADMIN)
    assert res.status_code == 200
    assert res.json()["skipped"] is True
    assert store["run_logs"][0]["reason"] == "already_matched"
    assert not any("FROM profiles" in s and "SELECT" in s for s in store["sql"])


def test_admin_force_run_clears_week_first(store):
    store["existing_groups"] = 3
    store["profiles"] = [_profile("a"), _profile("b"), _profile("c")]
    client = TestClient(m.app)
    res = client.post("/admin/matching/run?force=true", headers=ADMIN)
    assert res.status_code == 200
    assert res.json()["groups_created"] == 1
    delete_at = next(i for i, s in enumerate(store["sql"]) if "DELETE FROM matches" in s)
    insert_at = next(i for i, s in enumerate(store["sql"]) if "INSERT INTO matches" in s)
    assert delete_at < insert_at


def test_admin_run_failure_is_500(store, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(m, "repo_run_weekly_matching", boom)
    client = TestClient(m.app)
    res = client.post("/admin/matching/run", headers=ADMIN)
    assert res.status_code == 500
    assert res.json()["detail"] == "Failed to run matching algorithm"
    log = store["run_logs"][0]
    assert log["trigger"] == "admin"
    assert log["success"] is False


def test_cron_requires_configured_secret(store, monkeypatch):
    client = TestClient(m.app)
    monkeypatch.setattr(app_config, "CRON_SECRET", "")
    assert client.post("/cron/weekly-matching", headers=CRON).status_code == 500
    monkeypatch.setattr(app_config, "CRON_SECRET", "cron-secret")
    assert client.post("/cron/weekly-matching").status_code == 401
    assert client.post("/cron/weekly-matching", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_cron_run_logs_to_matching_logs(store):
    store["profiles"] = [_profile(uid) for uid in ("a", "b", "c", "d", "e", "f", "g")]
    client = TestClient(m.app)
    res = client.post("/cron/weekly-matching", headers=CRON)
    assert res.status_code == 200
    body = res.json()
    assert body["groups_created"] == 2
    assert body["unmatched_users"] == 1
    log = store["run_logs"][0]
    assert log["trigger"] == "cron"
    assert log["success"] is True
    assert log["groups_created"] == 2


def test_cron_failure_is_logged(store, monkeypatch):
    failures = []

    def boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(m, "repo_run_weekly_matching", boom)
    monkeypatch.setattr(m, "repo_log_failed_run", lambda now, trigger, error: failures.append((trigger, error)))
    client = TestClient(m.app)
    res = client.post("/cron/weekly-matching", headers=CRON)
    assert res.status_code == 500
    assert failures == [("cron", "db down")]


def test_cron_dry_run_is_dev_only(store, monkeypatch):
    store["profiles"] = [_profile("a"), _profile("b"), _profile("c")]
    client = TestClient(m.app)
    assert client.get("/cron/weekly-matching").status_code == 403

    monkeypatch.setattr(app_config, "DEV_MODE", True)
    res = client.get("/cron/weekly-matching")
    assert res.status_code == 200
    assert res.json()["groups_created"] == 1
    assert res.json()["persisted"] is False
    assert not any("INSERT INTO matches" in s for s in store["sql"])


def test_preview_includes_calibration(store):
    store["profiles"] = [_profile(uid) for uid in ("a", "b", "c", "d")]
    client = TestClient(m.app)
    res = client.get("/admin/matching/preview", headers=ADMIN)
    assert res.status_code == 200
    body = res.json()
    assert body["groups_created"] == 1
    assert body["calibration"]["eligible_users"] == 4
    assert not any("INSERT INTO" in s for s in store["sql"])


def test_stats_reports_eligibility(store):
    store["profiles"] = [_profile("a"), _profile("b", is_banned=True)]
    client = TestClient(m.app)
    res = client.get("/admin/matching/stats", headers=ADMIN)
    assert res.status_code == 200
    body = res.json()
    assert body["eligibility"]["eligible"] == 1
    assert body["eligibility"]["banned"] == 1
    assert body["week_already_matched"] is False
    assert body["config"]["target_size"] == 3


def test_week_summary_validates_date(store):
    client = TestClient(m.app)
    assert client.get("/admin/matching/week/not-a-date", headers=ADMIN).status_code == 400
    res = client.get("/admin/matching/week/2026-03-02", headers=ADMIN)
    assert res.status_code == 200
    assert res.json() == {"week_start_date": "2026-03-02", "groups_created": 0, "users_matched": 0, "groups": []}
