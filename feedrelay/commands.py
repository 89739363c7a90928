"""Subscribe, list and unsubscribe operations behind the webhook commands.

Each operation returns an outcome dataclass; rendering it into a chat reply
is left to the presentation layer. The expected caller is the Discord
interactions webhook handler for the /subscribe, /list and /unsubscribe
slash commands.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

from .feeds import normalize_feed_title
from .logging_config import create_execution_logger
from .models import ProbeResult, Subscription, new_subscription_id
from .scheduler import now_ms
from .storage import GuildIndex, SubscriptionStore


class Prober(Protocol):
    def probe(self, url: str) -> ProbeResult: ...


@dataclass
class SubscribeOutcome:
    status: str  # created | duplicate | invalid | probe_failed
    subscription: Subscription | None = None
    message: str | None = None
    url: str | None = None


@dataclass
class ListOutcome:
    subscriptions: list[Subscription] = field(default_factory=list)

    def by_channel(self) -> dict[str, list[Subscription]]:
        """Group subscriptions per channel, oldest first within a channel."""
        grouped: dict[str, list[Subscription]] = {}
        for sub in self.subscriptions:
            grouped.setdefault(sub.channel_id, []).append(sub)
        return {
            channel_id: sorted(subs, key=lambda sub: sub.created_at)
            for channel_id, subs in grouped.items()
        }


@dataclass
class UnsubscribeOutcome:
    status: str  # removed | not_found | invalid
    subscription: Subscription | None = None
    message: str | None = None


def normalize_url(value: str) -> str:
    """Validate and canonicalize a feed URL.

    Raises:
        ValueError: If the URL is malformed or not http/https
    """
    try:
        parts = urlsplit(value.strip())
        port = parts.port
    except ValueError:
        raise ValueError("The URL is not well formed.")

    scheme = parts.scheme.lower()
    if not scheme or not parts.hostname:
        raise ValueError("The URL is not well formed.")
    if scheme not in ("http", "https"):
        raise ValueError("Only http/https URLs are supported.")

    netloc = parts.hostname.lower()
    if ":" in netloc:
        netloc = f"[{netloc}]"
    if parts.username or parts.password:
        credentials = parts.username or ""
        if parts.password:
            credentials = f"{credentials}:{parts.password}"
        netloc = f"{credentials}@{netloc}"
    if port is not None and port != {"http": 80, "https": 443}[scheme]:
        netloc = f"{netloc}:{port}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


class SubscriptionCommands:
    """Guild-scoped subscription management."""

    def __init__(
        self,
        store: SubscriptionStore,
        index: GuildIndex,
        prober: Prober,
        clock: Callable[[], int] = now_ms,
        execution_id: str | None = None,
    ):
        self.store = store
        self.index = index
        self.prober = prober
        self.clock = clock
        self.logger = create_execution_logger("commands", execution_id)

    def subscribe(
        self, guild_id: str, channel_id: str, url: str | None
    ) -> SubscribeOutcome:
        if not url or not url.strip():
            return SubscribeOutcome(
                status="invalid",
                message="Please provide a feed URL, e.g. https://example.com/rss",
            )

        try:
            normalized = normalize_url(url)
        except ValueError as e:
            return SubscribeOutcome(status="invalid", message=str(e), url=url)

        existing = self.index.list_active(guild_id)
        for sub in existing:
            if sub.channel_id == channel_id and sub.url == normalized:
                return SubscribeOutcome(
                    status="duplicate", subscription=sub, url=normalized
                )

        probe = self.prober.probe(normalized)
        if not probe.ok:
            self.logger.info(
                f"Rejected subscription: {probe.message}",
                guild_id=guild_id,
                channel_id=channel_id,
                feed_url=normalized,
            )
            return SubscribeOutcome(
                status="probe_failed", message=probe.message, url=normalized
            )

        created_at = self.clock()
        subscription = Subscription(
            id=new_subscription_id(created_at),
            guild_id=guild_id,
            channel_id=channel_id,
            url=normalized,
            created_at=created_at,
            feed_title=normalize_feed_title(probe.title),
            error_count=0,
        )
        self.store.put(subscription)
        self.index.add(guild_id, subscription.id)

        self.logger.info(
            "Subscription created",
            guild_id=guild_id,
            channel_id=channel_id,
            subscription_id=subscription.id,
            feed_url=normalized,
        )
        return SubscribeOutcome(status="created", subscription=subscription, url=normalized)

    def list_subscriptions(self, guild_id: str) -> ListOutcome:
        return ListOutcome(subscriptions=self.index.list_active(guild_id))

    def unsubscribe(
        self, guild_id: str, subscription_id: str | None
    ) -> UnsubscribeOutcome:
        if not subscription_id or not subscription_id.strip():
            return UnsubscribeOutcome(
                status="invalid", message="Please provide a subscription id."
            )
        subscription_id = subscription_id.strip()

        existing = self.store.get(guild_id, subscription_id)
        if existing is None:
            return UnsubscribeOutcome(
                status="not_found", message="No subscription with that id."
            )

        self.store.delete(guild_id, subscription_id)
        self.index.remove(guild_id, subscription_id)

        self.logger.info(
            "Subscription removed",
            guild_id=guild_id,
            subscription_id=subscription_id,
            feed_url=existing.url,
        )
        return UnsubscribeOutcome(status="removed", subscription=existing)
