"""
services/trigger_service.py

Single-watch evaluation. One call to TriggerEngine.trigger():

  1. inactive -> NOOP "inactive", nothing written
  2. window fully in the past -> deactivate, NOOP "expired"
  3. generate date combinations, select the cheapest offer within maxStops
  4. decide NOTIFY / NOOP against targetUsd and lastNotifiedUsd
  5. write lastBestUsd / lastChecked in one update conditional on the
     lastChecked the watch was loaded with; on NOTIFY this claims the watch
     before sending
  6. on NOTIFY render and send the email; lastNotifiedUsd only moves on a
     successful send so a failed send is retried next cycle

Anti-spam rule: a second notification needs the price to fall at least
NOTIFY_MIN_DROP_USD below the last notified price.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from alerts_email import build_watch_deeplink, render_fare_email
from config import AUTO_DEACTIVATE_EXPIRED, NOTIFY_MIN_DROP_USD, NOTIFY_TO
from notifier import EmailMessagePayload, EmailTransport, NotificationError, resolve_recipient
from providers.base import FareSearchProvider, ProviderTotalFailure
from schemas.search import BestOffer
from schemas.sweep import (
    NotificationOutcome,
    NotificationStatus,
    OfferDates,
    OfferSummary,
    TriggerAction,
    TriggerResult,
)
from schemas.watches import WatchRecord
from services.date_combinations import generate_date_combinations
from services.errors import StaleWatchError, WatchNotFound
from services.offer_selector import select_best
from services.watch_repository import WatchRepository

logger = logging.getLogger(__name__)

REASON_INACTIVE = "inactive"
REASON_EXPIRED = "expired"
REASON_NO_OFFERS = "no offers within stop ceiling"
REASON_ABOVE_TARGET = "price above target"
REASON_ALREADY_NOTIFIED = "already notified at this price"
REASON_PRICE_DROP = "price at or below target"


def summarize_offer(best: BestOffer) -> OfferSummary:
    offer = best.offer
    return OfferSummary(
        total=offer.total,
        currency=offer.currency,
        carrier=offer.carrier,
        stopsOut=offer.stopsOut,
        stopsBack=offer.stopsBack,
        provider=offer.provider,
        dates=OfferDates(depart=best.dates.depart, returnDate=best.dates.returnDate),
    )


def window_has_elapsed(watch: WatchRecord, today: date) -> bool:
    return watch.end + timedelta(days=watch.flexDays or 0) < today


class TriggerEngine:
    def __init__(
        self,
        repo: WatchRepository,
        provider: FareSearchProvider,
        transport: EmailTransport,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
        min_drop: float = NOTIFY_MIN_DROP_USD,
        auto_deactivate: bool = AUTO_DEACTIVATE_EXPIRED,
        fallback_recipient: Optional[str] = NOTIFY_TO,
    ):
        self.repo = repo
        self.provider = provider
        self.transport = transport
        self.today = today
        self.now = now
        self.min_drop = min_drop
        self.auto_deactivate = auto_deactivate
        self.fallback_recipient = fallback_recipient

    # ---- entry point ----

    def trigger(self, watch_or_id: Union[WatchRecord, str]) -> TriggerResult:
        """Evaluate one watch. Raises WatchNotFound for an unknown id."""
        if isinstance(watch_or_id, WatchRecord):
            watch = watch_or_id
        else:
            watch = self.repo.get(watch_or_id)
            if watch is None:
                raise WatchNotFound(watch_or_id)

        try:
            return self._evaluate(watch)
        except (StaleWatchError, WatchNotFound, SQLAlchemyError) as e:
            logger.error(f"[trigger] ERROR watch_id={watch.id} repository failure: {e}")
            return self._result(watch, TriggerAction.ERROR, f"repository failure: {e}")

    # ---- decision policy ----

    def is_new_low(self, price: float, last_notified: Optional[float]) -> bool:
        if last_notified is None:
            return True
        if self.min_drop <= 0:
            return price < last_notified
        return price <= round(last_notified - self.min_drop, 2)

    def _evaluate(self, watch: WatchRecord) -> TriggerResult:
        if not watch.active:
            logger.info(f"[trigger] NOOP watch_id={watch.id} reason=inactive")
            return self._result(watch, TriggerAction.NOOP, REASON_INACTIVE)

        checked_at = self.now()
        today = self.today()

        if self.auto_deactivate and window_has_elapsed(watch, today):
            updated = self.repo.update_fields(
                watch.id,
                {"active": False, "lastChecked": checked_at},
                expected_last_checked=watch.lastChecked,
            )
            logger.info(f"[trigger] NOOP watch_id={watch.id} reason=expired end={watch.end} flex={watch.flexDays}")
            return self._result(updated, TriggerAction.NOOP, REASON_EXPIRED)

        combinations = generate_date_combinations(
            watch.start, watch.end, watch.flexDays, watch.tripType, today=today
        )

        try:
            selection = select_best(self.provider, watch, combinations)
        except ProviderTotalFailure as e:
            updated = self.repo.update_fields(
                watch.id, {"lastChecked": checked_at}, expected_last_checked=watch.lastChecked
            )
            logger.error(f"[trigger] ERROR watch_id={watch.id} provider rejected all {e.attempts} searches: {e}")
            return self._result(
                updated,
                TriggerAction.ERROR,
                f"provider rejected all searches: {e}",
                searched=e.attempts,
                failed=e.attempts,
            )

        counts = {"searched": selection.searched, "failed": selection.failed}

        if selection.best is None:
            updated = self.repo.update_fields(
                watch.id, {"lastChecked": checked_at}, expected_last_checked=watch.lastChecked
            )
            logger.info(f"[trigger] NOOP watch_id={watch.id} reason=no_offers combinations={len(combinations)}")
            return self._result(updated, TriggerAction.NOOP, REASON_NO_OFFERS, **counts)

        best = selection.best
        price = round(best.offer.total, 2)
        previous_best = watch.lastBestUsd
        price_change = round(price - previous_best, 2) if previous_best is not None else None

        updates: Dict[str, Any] = {"lastChecked": checked_at}
        if previous_best is None or price < previous_best:
            updates.update({
                "lastBestUsd": price,
                "lastProvider": best.offer.provider,
                "lastCarrier": best.offer.carrier,
                "lastDepart": best.dates.depart,
                "lastReturn": best.dates.returnDate,
            })

        if price > watch.targetUsd:
            action, reason = TriggerAction.NOOP, REASON_ABOVE_TARGET
        elif not self.is_new_low(price, watch.lastNotifiedUsd):
            action, reason = TriggerAction.NOOP, REASON_ALREADY_NOTIFIED
        else:
            action, reason = TriggerAction.NOTIFY, REASON_PRICE_DROP

        # On NOTIFY this claims the watch; a concurrent trigger makes it stale and nothing is sent
        updated = self.repo.update_fields(watch.id, updates, expected_last_checked=watch.lastChecked)

        if action == TriggerAction.NOOP:
            logger.info(
                f"[trigger] NOOP watch_id={watch.id} price={price:.2f} target={watch.targetUsd:.2f} "
                f"last_notified={watch.lastNotifiedUsd} reason={reason}"
            )
            return self._result(
                updated, action, reason, best=best, price_change=price_change, **counts
            )

        deeplink = build_watch_deeplink(watch, best)
        notification = self._send(watch, best, deeplink)
        if notification.status == NotificationStatus.SENT:
            updated = self.repo.update_fields(watch.id, {"lastNotifiedUsd": price})
        self._log_alert(watch, best, notification)

        logger.info(
            f"[trigger] NOTIFY watch_id={watch.id} price={price:.2f} target={watch.targetUsd:.2f} "
            f"notification={notification.status.value}"
        )
        return self._result(
            updated,
            action,
            reason,
            best=best,
            price_change=price_change,
            notification=notification,
            deeplink=deeplink,
            **counts,
        )

    # ---- notification ----

    def _send(self, watch: WatchRecord, best: BestOffer, deeplink: str) -> NotificationOutcome:
        subject, html, text = render_fare_email(watch, best, deeplink)

        to = resolve_recipient(watch, fallback=self.fallback_recipient)
        if not to:
            logger.warning(f"[trigger] notification skipped watch_id={watch.id} reason=no_recipient")
            return NotificationOutcome(
                status=NotificationStatus.SKIPPED,
                subject=subject,
                error="no recipient address",
            )

        try:
            sent = self.transport.send(EmailMessagePayload(to=to, subject=subject, html=html, text=text))
        except NotificationError as e:
            logger.warning(f"[trigger] notification failed watch_id={watch.id} to={to} error={e}")
            return NotificationOutcome(
                status=NotificationStatus.FAILED,
                to=to,
                subject=subject,
                provider=e.provider,
                error=str(e),
            )

        logger.info(f"[trigger] notification sent watch_id={watch.id} to={to} message_id={sent.message_id}")
        return NotificationOutcome(
            status=NotificationStatus.SENT,
            to=to,
            subject=subject,
            messageId=sent.message_id,
            provider=sent.provider,
        )

    def _log_alert(self, watch: WatchRecord, best: BestOffer, notification: NotificationOutcome) -> None:
        old_price = watch.lastNotifiedUsd if watch.lastNotifiedUsd is not None else watch.lastBestUsd
        try:
            self.repo.record_alert(
                watch.id,
                new_price=round(best.offer.total, 2),
                old_price=old_price,
                carrier=best.offer.carrier,
                depart=best.dates.depart,
                return_date=best.dates.returnDate,
                sent=notification.status == NotificationStatus.SENT,
                message_id=notification.messageId,
                provider=notification.provider,
                error=notification.error,
            )
        except SQLAlchemyError:
            # The watch row is already consistent; only the audit entry is lost
            logger.exception(f"[trigger] failed to record alert watch_id={watch.id}")

    # ---- result shape ----

    @staticmethod
    def _result(
        watch: WatchRecord,
        action: TriggerAction,
        reason: str,
        best: Optional[BestOffer] = None,
        searched: int = 0,
        failed: int = 0,
        price_change: Optional[float] = None,
        notification: Optional[NotificationOutcome] = None,
        deeplink: Optional[str] = None,
    ) -> TriggerResult:
        return TriggerResult(
            watchId=watch.id,
            route=watch.route,
            action=action,
            reason=reason,
            best=summarize_offer(best) if best else None,
            searchedCombinations=searched,
            failedCombinations=failed,
            currentPrice=round(best.offer.total, 2) if best else None,
            priceChange=price_change,
            lastBestUsd=watch.lastBestUsd,
            lastNotifiedUsd=watch.lastNotifiedUsd,
            notification=notification,
            deeplink=deeplink,
        )
