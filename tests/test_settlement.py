"""Tests for crediting users from payment webhooks."""
from unittest.mock import patch

import pytest
from celery.exceptions import Retry

from app.models.webhook_event import WebhookEvent
from app.services.credits import get_credits
from app.services.packages import seed_credit_packages
from app.services.settlement import mark_event_failed, record_webhook_event, settle_event
from app.workers import tasks


PRODUCT_10 = "ad039347-4617-4589-a559-05d7c8695800"


def _order(user=None, product_id=PRODUCT_10, email=None):
    order = {"id": "order_1", "product_id": product_id, "metadata": {}, "customer": {}}
    if user is not None:
        order["metadata"]["userId"] = str(user.id)
    if email:
        order["customer"]["email"] = email
    return order


@pytest.fixture(autouse=True)
def packages(db):
    seed_credit_packages(db)


class TestSettleEvent:

    def test_order_credits_package_amount(self, db, user):
        outcome = settle_event(db, "evt_1", "order.created", _order(user))

        assert outcome.status == "processed"
        assert outcome.credits_added == 10
        assert get_credits(db, user.id).credits == 4 + 10
        assert db.get(WebhookEvent, "evt_1").status == "processed"

    def test_user_resolved_by_email(self, db, user):
        settle_event(db, "evt_2", "order.created", _order(email="alice@example.com"))

        assert get_credits(db, user.id).credits == 14

    def test_customer_external_id(self, db, user):
        order = _order()
        order["customer"]["external_id"] = str(user.id)

        settle_event(db, "evt_ext", "order.created", order)

        assert get_credits(db, user.id).credits == 14

    def test_unknown_user_is_skipped(self, db, user):
        outcome = settle_event(db, "evt_3", "order.created", _order(email="nobody@example.com"))

        assert outcome.status == "skipped"
        assert get_credits(db, user.id).credits == 4
        event = db.get(WebhookEvent, "evt_3")
        assert event.status == "skipped"
        assert event.error == "User not found for order"

    def test_unknown_product_is_skipped(self, db, user):
        outcome = settle_event(db, "evt_4", "order.created", _order(user, product_id="prod_unknown"))

        assert outcome.status == "skipped"
        assert get_credits(db, user.id).credits == 4

    def test_unhandled_event_type_is_acknowledged(self, db, user):
        outcome = settle_event(db, "evt_5", "subscription.updated", {"id": "sub_1"})

        assert outcome.status == "skipped"
        assert outcome.reason == "Unhandled event type"

    def test_redelivered_event_credits_once(self, db, user):
        settle_event(db, "evt_6", "order.created", _order(user))
        again = settle_event(db, "evt_6", "order.created", _order(user))

        assert again.credits_added == 0
        assert get_credits(db, user.id).credits == 14

    def test_non_string_email_is_skipped(self, db, user):
        order = {"productId": PRODUCT_10, "customer": {"email": 5}}

        outcome = settle_event(db, "evt_7", "order.created", order)

        assert outcome.status == "skipped"
        assert outcome.reason == "User not found for order"
        assert db.get(WebhookEvent, "evt_7").status == "skipped"
        assert get_credits(db, user.id).credits == 4

    def test_list_payload_is_skipped(self, db, user):
        outcome = settle_event(db, "evt_8", "order.created", [{"productId": PRODUCT_10}])

        assert outcome.status == "skipped"
        assert outcome.reason == "Malformed order payload"
        assert db.get(WebhookEvent, "evt_8").status == "skipped"

    def test_malformed_sections_fall_back_to_skip(self, db, user):
        order = {"productId": PRODUCT_10, "metadata": "oops", "customer": ["alice@example.com"]}

        outcome = settle_event(db, "evt_9", "order.created", order)

        assert outcome.status == "skipped"
        assert get_credits(db, user.id).credits == 4

    def test_malformed_payload_is_not_retried(self, db, user):
        """A malformed order completes the task instead of scheduling a retry."""
        with patch.object(tasks.settle_webhook_event_task, "retry") as retry:
            result = tasks.settle_webhook_event_task.run(
                "evt_10", "order.created", {"productId": PRODUCT_10, "customer": {"email": 5}}
            )

        retry.assert_not_called()
        assert result["status"] == "skipped"
        db.expire_all()
        assert db.get(WebhookEvent, "evt_10").status == "skipped"


class TestRecordWebhookEvent:

    def test_new_event_is_enqueued_once(self, db):
        assert record_webhook_event(db, "evt_a", "order.created", {}) is True
        assert record_webhook_event(db, "evt_a", "order.created", {}) is False

    def test_failed_event_is_enqueued_again(self, db):
        record_webhook_event(db, "evt_b", "order.created", {})
        mark_event_failed(db, "evt_b", "db down")

        assert record_webhook_event(db, "evt_b", "order.created", {}) is True
        assert db.get(WebhookEvent, "evt_b").status == "received"


class TestSettlementTask:

    def test_task_settles_event(self, db, user):
        result = tasks.settle_webhook_event_task.run("evt_t1", "order.created", _order(user))

        assert result["status"] == "processed"
        assert result["credits_added"] == 10
        assert get_credits(db, user.id).credits == 14

    def test_error_is_retried_with_backoff(self, db):
        record_webhook_event(db, "evt_t2", "order.created", {})

        with patch.object(tasks, "settle_event", side_effect=RuntimeError("db down")), \
                patch.object(tasks.settle_webhook_event_task, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                tasks.settle_webhook_event_task.run("evt_t2", "order.created", {})

        assert retry.call_args.kwargs["countdown"] == 1
        db.expire_all()
        assert db.get(WebhookEvent, "evt_t2").status == "received"

    def test_exhausted_retries_mark_event_failed(self, db):
        record_webhook_event(db, "evt_t3", "order.created", {})
        task = tasks.settle_webhook_event_task

        task.push_request(retries=task.max_retries)
        try:
            with patch.object(tasks, "settle_event", side_effect=RuntimeError("db down")):
                with pytest.raises(RuntimeError):
                    task.run("evt_t3", "order.created", {})
        finally:
            task.pop_request()

        db.expire_all()
        event = db.get(WebhookEvent, "evt_t3")
        assert event.status == "failed"
        assert event.error == "db down"


class TestGenerationTask:

    def test_task_runs_generation(self):
        with patch.object(tasks, "run_generation", return_value="completed") as run:
            assert tasks.process_generation_task.run("gen-1") == "completed"
        assert run.call_args[0][1] == "gen-1"
