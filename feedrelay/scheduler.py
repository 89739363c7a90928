"""Scheduled sweep that relays new feed items into Discord channels."""

import time
from collections.abc import Callable
from typing import Any, Protocol

from .config import BackoffConfig
from .diff import diff_items
from .feeds import NO_TITLE, normalize_feed_title
from .logging_config import create_execution_logger
from .models import FeedItem, ParsedFeed, Subscription
from .storage import SubscriptionStore

MAX_MESSAGE_LENGTH = 1900


class FeedSource(Protocol):
    def fetch_feed(self, url: str) -> ParsedFeed: ...


class Notifier(Protocol):
    def send_message(self, channel_id: str, text: str) -> None: ...


def now_ms() -> int:
    return int(time.time() * 1000)


def format_message(item: FeedItem) -> str:
    """Title on the first line, link on the second, capped for Discord."""
    title = item.title.strip() if item.title else ""
    title = title or NO_TITLE
    link = item.link.strip() if item.link else ""
    text = f"{title}\n{link}" if link else title
    if len(text) > MAX_MESSAGE_LENGTH:
        return text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text


def backoff_until(error_count: int, config: BackoffConfig, now: int) -> int | None:
    """Epoch ms before which a failing subscription is skipped, if any."""
    if not config.enabled or error_count < config.threshold:
        return None
    exponent = error_count - config.threshold
    delay = min(config.base_seconds * 2**exponent, config.max_seconds)
    return now + delay * 1000


class FeedChecker:
    """Runs one reconciliation cycle over every stored subscription.

    Subscriptions are handled one at a time, and each subscription's
    messages are sent oldest first before its watermark moves, so a crash
    can only cause re-sends, never skipped items.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        fetcher: FeedSource,
        notifier: Notifier,
        backoff: BackoffConfig | None = None,
        clock: Callable[[], int] = now_ms,
        execution_id: str | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.notifier = notifier
        self.backoff = backoff or BackoffConfig()
        self.clock = clock
        self.logger = create_execution_logger("scheduler", execution_id)

    def run_cycle(self) -> dict[str, Any]:
        """Check every subscription once and return cycle metrics."""
        self.logger.log_execution_start()
        metrics: dict[str, Any] = {
            "subscriptions_found": 0,
            "subscriptions_checked": 0,
            "subscriptions_skipped": 0,
            "subscriptions_failed": 0,
            "messages_sent": 0,
            "errors": [],
        }

        # Full scan rather than the guild indexes, so index drift never hides
        # a subscription from the sweep.
        keys = self.store.list_keys()
        for key in keys:
            try:
                subscription = self.store.load(key)
            except Exception as e:
                self.logger.error(f"Failed to load {key}: {e}", key=key, error=str(e))
                metrics["errors"].append(f"{key}: {e}")
                continue
            if subscription is None:
                continue
            metrics["subscriptions_found"] += 1

            now = self.clock()
            if subscription.next_check_at and subscription.next_check_at > now:
                self.logger.debug(
                    "Skipping subscription in error backoff",
                    subscription_id=subscription.id,
                    guild_id=subscription.guild_id,
                    next_check_at=subscription.next_check_at,
                )
                metrics["subscriptions_skipped"] += 1
                continue

            metrics["subscriptions_checked"] += 1
            try:
                metrics["messages_sent"] += self.process_subscription(subscription)
            except Exception as e:
                metrics["subscriptions_failed"] += 1
                metrics["errors"].append(f"{subscription.id}: {e}")
                self.record_failure(subscription, e)

        self.logger.log_execution_end(success=True, metrics=metrics)
        return metrics

    def process_subscription(self, subscription: Subscription) -> int:
        """Fetch one feed, relay its new items and persist the new state.

        Returns:
            Number of messages sent
        """
        feed = self.fetcher.fetch_feed(subscription.url)
        changed = False

        normalized_title = normalize_feed_title(feed.title)
        if normalized_title and normalized_title != subscription.feed_title:
            subscription.feed_title = normalized_title
            changed = True

        if subscription.error_count or subscription.last_error or subscription.next_check_at:
            changed = True

        result = diff_items(
            feed.items, subscription.last_item_id, subscription.last_item_date
        )

        if not result.new_items:
            latest = result.latest_item
            if latest is not None and latest.id != subscription.last_item_id:
                subscription.last_item_id = latest.id
                subscription.last_item_date = latest.date
                changed = True
            if changed:
                self._save_success(subscription)
            return 0

        for item in result.new_items:
            self.notifier.send_message(subscription.channel_id, format_message(item))

        last_sent = result.new_items[-1]
        subscription.last_item_id = last_sent.id
        subscription.last_item_date = last_sent.date
        self._save_success(subscription)

        self.logger.info(
            f"Relayed {len(result.new_items)} new items",
            subscription_id=subscription.id,
            guild_id=subscription.guild_id,
            feed_url=subscription.url,
        )
        return len(result.new_items)

    def record_failure(self, subscription: Subscription, error: Exception) -> None:
        """Store the error on the subscription; the watermark is left as is."""
        subscription.error_count += 1
        subscription.last_error = str(error) or type(error).__name__
        subscription.next_check_at = backoff_until(
            subscription.error_count, self.backoff, self.clock()
        )

        self.logger.warning(
            f"Subscription check failed: {subscription.last_error}",
            subscription_id=subscription.id,
            guild_id=subscription.guild_id,
            feed_url=subscription.url,
            error_count=subscription.error_count,
        )
        try:
            self.store.put(subscription)
        except Exception as e:
            self.logger.error(
                f"Failed to persist subscription error state: {e}",
                subscription_id=subscription.id,
                guild_id=subscription.guild_id,
            )

    def _save_success(self, subscription: Subscription) -> None:
        """Persist the record with its error state cleared.

        A failed write restores the previous error fields before re-raising.
        """
        previous = (
            subscription.error_count,
            subscription.last_error,
            subscription.next_check_at,
        )
        subscription.error_count = 0
        subscription.last_error = None
        subscription.next_check_at = None
        try:
            self.store.put(subscription)
        except Exception:
            (
                subscription.error_count,
                subscription.last_error,
                subscription.next_check_at,
            ) = previous
            raise
