"""Tests for the spotcheck CLI (geo, queue, config sub-apps)."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from spotcheck.cli.app import app
from spotcheck.core.storage import SqliteKeyValueStore
from spotcheck.resilience.offline_queue import OfflineQueue, QueueItemKind

runner = CliRunner()

DETROIT = "42.3314,-83.0458"
NEARBY = "42.3319,-83.0458"


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "queue.db")


@pytest.fixture
def filled_db(db_path):
    store = SqliteKeyValueStore(db_path)
    queue = OfflineQueue(store)
    ids = [
        queue.enqueue(QueueItemKind.SUBMISSION, {"challenge_id": "c1"}).id,
        queue.enqueue(QueueItemKind.ANALYTICS_EVENT, {"name": "open"}).id,
    ]
    store.close()
    return db_path, ids


# ── Root app ─────────────────────────────────────────────────────────────


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("spotcheck ")

    def test_help_lists_sub_apps(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("geo", "queue", "config"):
            assert name in result.output


# ── geo ──────────────────────────────────────────────────────────────────


class TestGeo:
    def test_distance_json(self):
        result = runner.invoke(app, ["geo", "distance", DETROIT, NEARBY, "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["meters"] == pytest.approx(55.6, abs=0.1)
        assert data["formatted"] == "56m"
        assert data["bearing"] == 0.0

    def test_distance_table(self):
        result = runner.invoke(app, ["geo", "distance", DETROIT, "42.9634,-85.6681"])
        assert result.exit_code == 0
        assert "km" in result.output

    def test_distance_bad_input(self):
        result = runner.invoke(app, ["geo", "distance", "42.3", NEARBY])
        assert result.exit_code == 1

    def test_distance_out_of_range(self):
        result = runner.invoke(app, ["geo", "distance", "95,0", NEARBY])
        assert result.exit_code == 1

    def test_verify_valid(self):
        result = runner.invoke(
            app, ["geo", "verify", "-u", NEARBY, "-t", DETROIT, "-a", "8", "--json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["is_valid"] is True
        assert data["distance"] == 56
        assert data["fraud_risk"] == "low"
        assert data["verification_method"] == "gps"

    def test_verify_outside_radius_exits_2(self):
        result = runner.invoke(
            app, ["geo", "verify", "-u", NEARBY, "-t", DETROIT, "-a", "8", "-r", "30", "--json"]
        )
        assert result.exit_code == 2
        assert json.loads(result.output)["is_valid"] is False

    def test_verify_radius_from_settings(self):
        result = runner.invoke(
            app,
            ["geo", "verify", "-u", NEARBY, "-t", DETROIT, "--json"],
            env={"SPOTCHECK_VERIFICATION_RADIUS_METERS": "40"},
        )
        assert result.exit_code == 2

    def test_verify_bad_radius(self):
        result = runner.invoke(app, ["geo", "verify", "-u", NEARBY, "-t", DETROIT, "-r", "0"])
        assert result.exit_code == 1


# ── queue ────────────────────────────────────────────────────────────────


class TestQueue:
    def test_list_json(self, filled_db):
        db_path, ids = filled_db
        result = runner.invoke(app, ["queue", "list", "--db", db_path, "--json"])
        assert result.exit_code == 0
        rows = json.loads(result.output)
        assert [r["id"] for r in rows] == ids
        assert rows[0]["kind"] == "submission"
        assert rows[0]["attempts"] == 0

    def test_list_empty(self, db_path):
        result = runner.invoke(app, ["queue", "list", "--db", db_path])
        assert result.exit_code == 0
        assert "No items" in result.output

    def test_clear_with_yes(self, filled_db):
        db_path, _ = filled_db
        result = runner.invoke(app, ["queue", "clear", "--db", db_path, "--yes"])
        assert result.exit_code == 0
        assert "Cleared 2 item(s)." in result.output

        store = SqliteKeyValueStore(db_path)
        assert len(OfflineQueue(store)) == 0
        store.close()

    def test_clear_declined_keeps_items(self, filled_db):
        db_path, ids = filled_db
        result = runner.invoke(app, ["queue", "clear", "--db", db_path], input="n\n")
        assert result.exit_code == 1

        store = SqliteKeyValueStore(db_path)
        assert [item.id for item in OfflineQueue(store).items()] == ids
        store.close()

    def test_clear_empty(self, db_path):
        result = runner.invoke(app, ["queue", "clear", "--db", db_path])
        assert result.exit_code == 0
        assert "Queue is empty." in result.output


# ── config ───────────────────────────────────────────────────────────────


class TestConfig:
    def test_show_json_reflects_env(self, tmp_path):
        result = runner.invoke(
            app,
            ["config", "show", "--json"],
            env={"SPOTCHECK_RETRY_MAX_ATTEMPTS": "7", "SPOTCHECK_DATA_DIR": str(tmp_path)},
        )
        assert result.exit_code == 0
        assert '"retry_max_attempts": 7' in result.output

    def test_show_table(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "spotcheck settings" in result.output

    def test_invalid_env_fails(self):
        result = runner.invoke(
            app, ["config", "show"], env={"SPOTCHECK_RETRY_BACKOFF_MULTIPLIER": "0.5"}
        )
        assert result.exit_code == 1
