"""Data models for Feed Relay."""

import os
import time
from dataclasses import asdict, dataclass, field
from typing import Any

# Crockford base32, as used by ULIDs
_ULID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

FEED_FORMATS = ("rss", "atom", "rdf", "unknown")


def new_subscription_id(timestamp_ms: int | None = None) -> str:
    """Generate a lexicographically sortable ULID.

    48 bits of millisecond timestamp followed by 80 random bits, encoded as
    26 Crockford base32 characters.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= int.from_bytes(os.urandom(10), "big")

    chars = []
    for _ in range(26):
        chars.append(_ULID_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


@dataclass
class FeedItem:
    """Represents a single normalized RSS/Atom/RDF feed item."""

    id: str
    title: str
    link: str | None = None
    date: int | None = None  # epoch milliseconds
    summary: str | None = None


@dataclass
class ParsedFeed:
    """Result of parsing a feed document."""

    format: str
    items: list[FeedItem] = field(default_factory=list)
    title: str | None = None


@dataclass
class DiffResult:
    """Items considered new since the stored watermark."""

    new_items: list[FeedItem]
    latest_item: FeedItem | None = None


@dataclass
class ProbeResult:
    """Outcome of validating a feed URL before subscribing."""

    ok: bool
    format: str | None = None
    title: str | None = None
    message: str | None = None


_REQUIRED_FIELDS = ("id", "guild_id", "channel_id", "url")


@dataclass
class Subscription:
    """One feed tracked for one channel in one guild."""

    id: str
    guild_id: str
    channel_id: str
    url: str
    created_at: int
    last_item_id: str | None = None
    last_item_date: int | None = None
    feed_title: str | None = None
    error_count: int = 0
    last_error: str | None = None
    next_check_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape stored in the key-value table."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Any) -> "Subscription":
        """Build a subscription from stored JSON data.

        Raises:
            ValueError: If the data is not a structurally valid record
        """
        if not isinstance(data, dict):
            raise ValueError("Subscription record must be an object")

        for name in _REQUIRED_FIELDS:
            value = data.get(name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"Subscription record has invalid {name!r}")

        created_at = data.get("created_at")
        if not isinstance(created_at, int):
            raise ValueError("Subscription record has invalid 'created_at'")

        return cls(
            id=data["id"],
            guild_id=data["guild_id"],
            channel_id=data["channel_id"],
            url=data["url"],
            created_at=created_at,
            last_item_id=data.get("last_item_id"),
            last_item_date=data.get("last_item_date"),
            feed_title=data.get("feed_title"),
            error_count=int(data.get("error_count") or 0),
            last_error=data.get("last_error"),
            next_check_at=data.get("next_check_at"),
        )
