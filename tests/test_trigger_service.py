from datetime import date, datetime

import pytest

from conftest import TODAY, FakeTransport, TickingClock, flat_price, make_offer, watch_payload
from providers.base import ProviderRequestError, ProviderTransientError
from schemas.sweep import NotificationStatus, TriggerAction
from services.errors import WatchNotFound
from services.trigger_service import TriggerEngine


def test_end_to_end_notify_then_noop_then_notify_again(repo, provider, transport, trigger_engine):
    watch = repo.create(watch_payload())

    first = trigger_engine.trigger(watch.id)
    assert first.action == TriggerAction.NOTIFY
    assert first.currentPrice == 450.0
    assert first.lastBestUsd == 450.0
    assert first.lastNotifiedUsd == 450.0
    assert first.notification.status == NotificationStatus.SENT
    assert first.route == "NYC → LAX"

    second = trigger_engine.trigger(watch.id)
    assert second.action == TriggerAction.NOOP
    assert second.reason == "already notified at this price"
    assert second.priceChange == 0.0

    provider.responder = flat_price(430.0)
    third = trigger_engine.trigger(watch.id)
    assert third.action == TriggerAction.NOTIFY
    assert third.lastNotifiedUsd == 430.0
    assert third.priceChange == -20.0

    assert len(transport.sent) == 2
    stored = repo.get(watch.id)
    assert stored.lastBestUsd == 430.0
    assert stored.lastNotifiedUsd == 430.0
    assert stored.lastChecked is not None


def test_notification_email_content(repo, transport, trigger_engine):
    watch = repo.create(watch_payload())
    result = trigger_engine.trigger(watch.id)

    payload = transport.sent[0]
    assert payload.to == "traveller@example.com"
    assert payload.subject == "Price drop: NYC → LAX from USD 450.00"
    assert "American Airlines" in payload.text
    assert "USD 500.00" in payload.text
    assert result.deeplink in payload.text
    assert f"watchId={watch.id}" in result.deeplink


def test_failed_send_is_retried_next_trigger(repo, provider):
    transport = FakeTransport(fail=True)
    engine = TriggerEngine(repo, provider, transport, today=lambda: TODAY, now=TickingClock(), fallback_recipient=None)
    watch = repo.create(watch_payload())

    first = engine.trigger(watch.id)
    assert first.action == TriggerAction.NOTIFY
    assert first.notification.status == NotificationStatus.FAILED
    assert first.lastNotifiedUsd is None
    assert first.lastBestUsd == 450.0

    transport.fail = False
    second = engine.trigger(watch.id)
    assert second.action == TriggerAction.NOTIFY
    assert second.notification.status == NotificationStatus.SENT
    assert second.lastNotifiedUsd == 450.0

    alerts = repo.list_alerts(watch.id)
    assert len(alerts) == 2
    assert [a.sent for a in alerts] == [True, False]


def test_small_drop_below_margin_does_not_renotify(repo, provider, transport, trigger_engine):
    watch = repo.create(watch_payload())
    trigger_engine.trigger(watch.id)

    provider.responder = flat_price(449.5)
    result = trigger_engine.trigger(watch.id)
    assert result.action == TriggerAction.NOOP
    assert result.reason == "already notified at this price"
    assert result.lastBestUsd == 449.5

    provider.responder = flat_price(449.0)
    assert trigger_engine.trigger(watch.id).action == TriggerAction.NOTIFY
    assert len(transport.sent) == 2


def test_price_above_target_records_best_without_notifying(repo, transport, trigger_engine):
    watch = repo.create(watch_payload(targetUsd=400))

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOOP
    assert result.reason == "price above target"
    assert result.lastBestUsd == 450.0
    assert result.lastNotifiedUsd is None
    assert transport.sent == []
    assert repo.list_alerts(watch.id) == []


def test_higher_price_keeps_previous_best(repo, provider, trigger_engine):
    watch = repo.create(watch_payload(targetUsd=300))
    trigger_engine.trigger(watch.id)

    provider.responder = flat_price(520.0)
    result = trigger_engine.trigger(watch.id)

    assert result.lastBestUsd == 450.0
    assert result.priceChange == 70.0


def test_inactive_watch_short_circuits(repo, provider, trigger_engine):
    watch = repo.create(watch_payload(active=False))

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOOP
    assert result.reason == "inactive"
    assert provider.requests == []
    assert repo.get(watch.id).lastChecked is None


def test_elapsed_window_deactivates_watch(repo, provider, trigger_engine):
    watch = repo.create(watch_payload(start="2025-10-01", end="2025-10-05", flexDays=2))

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOOP
    assert result.reason == "expired"
    assert provider.requests == []
    assert repo.get(watch.id).active is False


def test_no_offers_updates_last_checked(repo, trigger_engine, provider):
    provider.responder = lambda r: []
    watch = repo.create(watch_payload())

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOOP
    assert result.reason == "no offers within stop ceiling"
    assert result.searchedCombinations == 10
    stored = repo.get(watch.id)
    assert stored.lastChecked is not None
    assert stored.lastBestUsd is None


def test_all_transient_failures_are_noop(repo, trigger_engine, provider):
    def responder(r):
        raise ProviderTransientError("timeout", provider="fake")

    provider.responder = responder
    watch = repo.create(watch_payload())

    result = trigger_engine.trigger(watch.id)
    assert result.action == TriggerAction.NOOP
    assert result.failedCombinations == result.searchedCombinations


def test_rejected_route_is_error(repo, trigger_engine, provider):
    def responder(r):
        raise ProviderRequestError("invalid route", status_code=400, provider="fake")

    provider.responder = responder
    watch = repo.create(watch_payload())

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.ERROR
    assert "invalid route" in result.reason
    assert repo.get(watch.id).lastChecked is not None


def test_concurrent_write_surfaces_as_error(repo, transport, trigger_engine):
    watch = repo.create(watch_payload())
    stale = repo.get(watch.id)
    repo.update_fields(watch.id, {"lastChecked": datetime(2025, 11, 1, 7, 0)})

    result = trigger_engine.trigger(stale)

    assert result.action == TriggerAction.ERROR
    assert result.reason.startswith("repository failure")
    assert repo.get(watch.id).lastBestUsd is None
    assert transport.sent == []


def test_stale_snapshot_after_notify_sends_nothing(repo, transport, trigger_engine):
    repo.create(watch_payload())
    snapshot = repo.list_active()[0]

    first = trigger_engine.trigger(snapshot.id)
    second = trigger_engine.trigger(snapshot)

    assert first.action == TriggerAction.NOTIFY
    assert second.action == TriggerAction.ERROR
    assert len(transport.sent) == 1
    assert len(repo.list_alerts(snapshot.id)) == 1
    assert repo.get(snapshot.id).lastNotifiedUsd == 450.0


def test_no_recipient_skips_send_and_keeps_notified_unset(repo, transport, trigger_engine):
    watch = repo.create(watch_payload(channel="sms", email=None, phone="+15550100"))

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOTIFY
    assert result.notification.status == NotificationStatus.SKIPPED
    assert result.lastNotifiedUsd is None
    assert transport.sent == []


def test_fallback_recipient_used_for_sms_channel(repo, provider, transport):
    engine = TriggerEngine(
        repo, provider, transport, today=lambda: TODAY, now=TickingClock(), fallback_recipient="ops@example.com"
    )
    watch = repo.create(watch_payload(channel="sms", email=None))

    result = engine.trigger(watch.id)

    assert result.notification.to == "ops@example.com"
    assert transport.sent[0].to == "ops@example.com"


def test_oneway_watch_searches_without_return_dates(repo, provider, trigger_engine):
    watch = repo.create(watch_payload(tripType="oneway"))
    provider.responder = lambda r: [make_offer(r, 300.0, stops_out=0)]

    result = trigger_engine.trigger(watch.id)

    assert result.action == TriggerAction.NOTIFY
    assert all(r.returnDate is None for r in provider.requests)
    assert result.best.dates.returnDate is None
    assert result.best.stopsBack is None


def test_unknown_watch_id_raises(trigger_engine):
    with pytest.raises(WatchNotFound):
        trigger_engine.trigger("missing")


def test_is_new_low_margin(trigger_engine):
    assert trigger_engine.is_new_low(450.0, None)
    assert not trigger_engine.is_new_low(450.0, 450.0)
    assert not trigger_engine.is_new_low(449.5, 450.0)
    assert trigger_engine.is_new_low(449.0, 450.0)

    trigger_engine.min_drop = 0
    assert trigger_engine.is_new_low(449.99, 450.0)
    assert not trigger_engine.is_new_low(450.0, 450.0)


def test_repeated_triggers_at_same_price_notify_once(repo, transport, trigger_engine):
    watch = repo.create(watch_payload())
    actions = [trigger_engine.trigger(watch.id).action for _ in range(4)]
    assert actions.count(TriggerAction.NOTIFY) == 1
    assert len(transport.sent) == 1


def test_expired_check_uses_flex_days(repo, provider, trigger_engine):
    # end + flexDays still reaches today
    watch = repo.create(watch_payload(start="2025-10-25", end="2025-10-30", flexDays=2, tripType="oneway"))
    result = trigger_engine.trigger(watch.id)
    assert result.reason != "expired"
    assert provider.requests
    assert repo.get(watch.id).active is True
    assert max(r.departDate for r in provider.requests) == date(2025, 11, 1)
