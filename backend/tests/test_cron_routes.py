# Overview: Pytest coverage for the scheduled job routes and the jobs CLI.

import json
from datetime import timedelta

import pytest

from restoflow.models import Product, SystemLog
from restoflow.services import jobs


CRON_ROUTES = [
    ("/api/cron/check-subscriptions", "expired"),
    ("/api/cron/suspend-expired-restaurants", "suspended"),
    ("/api/cron/verify-stock-consistency", "checked_inconsistencies"),
    ("/api/cron/archive-old-orders", "archived"),
    ("/api/cron/clean-system-logs", "deleted"),
    ("/api/cron/cancel-abandoned-orders", "cancelled"),
    ("/api/cron/clean-pending-payments", "expired"),
]


class TestCronAuthentication:

    @pytest.mark.parametrize("path,_key", CRON_ROUTES)
    def test_missing_header(self, client, db_session, path, _key):
        assert client.get(path).status_code == 401

    def test_wrong_secret(self, client, db_session):
        resp = client.get(
            "/api/cron/verify-stock-consistency",
            headers={"Authorization": "Bearer not-the-secret"},
        )
        assert resp.status_code == 401

    def test_unset_secret_rejects_everything(self, app, client, db_session, cron_auth, monkeypatch):
        monkeypatch.setitem(app.config, "CRON_SECRET", None)

        resp = client.get("/api/cron/verify-stock-consistency", headers=cron_auth)

        assert resp.status_code == 401

    def test_rejected_before_any_work(self, client, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=0, is_available=True)

        client.get("/api/cron/verify-stock-consistency")

        assert db_session.get(Product, product.id).is_available is True
        assert db_session.query(SystemLog).count() == 0


class TestCronSummaries:

    @pytest.mark.parametrize("path,key", CRON_ROUTES)
    def test_empty_run(self, client, db_session, cron_auth, path, key):
        resp = client.get(path, headers=cron_auth)

        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["task"] == path.rsplit("/", 1)[-1]
        assert resp.json[key] == 0
        assert resp.json["executed_at"].endswith("Z")

    def test_stock_consistency_summary(self, client, db_session, cron_auth, restaurant_a, make_product):
        make_product(restaurant_a, quantity=0, is_available=True)

        resp = client.get("/api/cron/verify-stock-consistency", headers=cron_auth)

        assert resp.json["checked_inconsistencies"] == 1
        assert len(resp.json["disabled"]) == 1

    def test_thresholds_from_config(self, app, client, db_session, cron_auth, restaurant_a, make_order, monkeypatch):
        monkeypatch.setitem(app.config, "ABANDONED_ORDER_MINUTES", 30)
        make_order(restaurant_a, status="pending", age=timedelta(minutes=45))

        resp = client.get("/api/cron/cancel-abandoned-orders", headers=cron_auth)

        assert resp.json["cancelled"] == 1
        assert resp.json["abandoned_after_minutes"] == 30


class TestCronFailures:

    def test_failure_is_500_and_logged(self, client, db_session, cron_auth, monkeypatch):
        def boom(settings, publisher):
            raise RuntimeError("database unavailable")

        monkeypatch.setitem(jobs.JOBS, "archive-old-orders", boom)

        resp = client.get("/api/cron/archive-old-orders", headers=cron_auth)

        assert resp.status_code == 500
        assert resp.json["success"] is False
        log = db_session.query(SystemLog).filter_by(action="cron_error").one()
        assert log.level == "error"
        assert log.payload == {"task": "archive-old-orders", "error": "database unavailable"}


class TestJobsCli:

    def test_list(self, app):
        result = app.test_cli_runner().invoke(args=["jobs", "list"])

        assert result.exit_code == 0
        assert set(result.output.split()) == set(jobs.JOBS)

    def test_run(self, app, db_session, restaurant_a, make_product):
        make_product(restaurant_a, quantity=0, is_available=True)

        result = app.test_cli_runner().invoke(args=["jobs", "run", "verify-stock-consistency"])

        assert result.exit_code == 0
        assert json.loads(result.output)["checked_inconsistencies"] == 1

    def test_unknown_job(self, app):
        result = app.test_cli_runner().invoke(args=["jobs", "run", "reboot-everything"])

        assert result.exit_code != 0
