"""Feed fetching, probing and normalization for Feed Relay."""

import io
import re
import xml.sax
from collections.abc import Mapping
from datetime import UTC
from typing import Any

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .config import FetchConfig
from .logging_config import create_execution_logger
from .models import FeedItem, ParsedFeed, ProbeResult

NO_TITLE = "(no title)"
MAX_FEED_TITLE_LENGTH = 200

ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"
)

# Date fields in order of preference; feedparser folds pubDate and
# dcterms:issued into "published", dc:date and dcterms:modified into "updated".
RSS_DATE_FIELDS = ("published", "updated")
ATOM_DATE_FIELDS = ("updated", "published")

_WHITESPACE = re.compile(r"\s+")


class FeedParseError(Exception):
    """Raised when a document cannot be read as markup at all."""


class FeedFetchError(Exception):
    """Raised when a feed download returns a non-2xx status."""

    def __init__(self, status_code: int):
        super().__init__(f"Feed fetch failed ({status_code})")
        self.status_code = status_code


class UnsupportedFeedError(Exception):
    """Raised when a document parses but is not RSS, Atom or RDF."""

    def __init__(self):
        super().__init__("Unsupported feed format")


def detect_format(version: str) -> str:
    """Map a feedparser version string onto rss/atom/rdf/unknown."""
    if not version:
        return "unknown"
    if version.startswith("atom"):
        return "atom"
    if version in ("rss090", "rss10"):
        return "rdf"
    if version.startswith("rss"):
        return "rss"
    return "unknown"


def pick_text(value: Any) -> str | None:
    """Extract text from a bare value or a structured text node."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    if isinstance(value, Mapping):
        for key in ("value", "text"):
            if key in value:
                return pick_text(value[key])
        return None
    if isinstance(value, (list, tuple)):
        return pick_text(value[0]) if value else None
    return None


def pick_link(value: Any) -> str | None:
    """Resolve a link from a string, a link object or a list of link objects.

    Lists prefer the rel="alternate" entry, else the first one.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        preferred = next(
            (
                link
                for link in value
                if isinstance(link, Mapping) and link.get("rel") == "alternate"
            ),
            value[0],
        )
        return pick_link(preferred)
    if isinstance(value, Mapping):
        return pick_link(value.get("href") or value.get("url"))
    return None


def parse_date(value: Any) -> int | None:
    """Parse a feed date into epoch milliseconds, None when unparseable."""
    text = pick_text(value)
    if not text:
        return None
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)


def clean_html(content: str | None) -> str:
    """Remove HTML tags from content and normalize whitespace."""
    if not content:
        return ""

    if "<" in content or ">" in content:
        soup = BeautifulSoup(content, "html.parser")
        for script in soup(["script", "style"]):
            script.decompose()
        content = soup.get_text(separator=" ")

    return _WHITESPACE.sub(" ", content).strip()


def normalize_feed_title(value: str | None) -> str | None:
    """Collapse whitespace and cap a feed title at MAX_FEED_TITLE_LENGTH."""
    if not value:
        return None
    trimmed = _WHITESPACE.sub(" ", value).strip()
    if not trimmed:
        return None
    if len(trimmed) > MAX_FEED_TITLE_LENGTH:
        return trimmed[: MAX_FEED_TITLE_LENGTH - 3] + "..."
    return trimmed


def normalize_entry(entry: Mapping, feed_format: str) -> FeedItem:
    """Normalize a feedparser entry into a FeedItem."""
    title = pick_text(entry.get("title")) or NO_TITLE

    if feed_format == "atom":
        link = pick_link(entry.get("links")) or pick_link(entry.get("link"))
        date_fields = ATOM_DATE_FIELDS
        summary_source = entry.get("summary") or entry.get("content")
    else:
        link = pick_link(entry.get("link"))
        date_fields = RSS_DATE_FIELDS
        summary_source = entry.get("summary")

    item_id = pick_text(entry.get("id")) or link or title

    date = None
    for name in date_fields:
        if entry.get(name):
            date = parse_date(entry.get(name))
            break

    summary = clean_html(pick_text(summary_source)) or None

    return FeedItem(id=item_id, title=title, link=link, date=date, summary=summary)


def _looks_like_markup(document: bytes) -> bool:
    return document.lstrip(b"\xef\xbb\xbf \t\r\n").startswith(b"<")


def parse_feed(document: str | bytes) -> ParsedFeed:
    """Parse a raw feed document into a ParsedFeed.

    Unrecognised documents come back as format "unknown" with no items.

    Raises:
        FeedParseError: If the document is not markup at all
    """
    if isinstance(document, str):
        document = document.encode("utf-8")

    parsed = feedparser.parse(io.BytesIO(document))
    feed_format = detect_format(parsed.get("version", ""))

    if feed_format == "unknown":
        bozo_exception = parsed.get("bozo_exception")
        # HTML pages fail the strict parser yet still count as readable markup.
        if (
            parsed.get("bozo")
            and isinstance(bozo_exception, xml.sax.SAXException)
            and not _looks_like_markup(document)
        ):
            raise FeedParseError(f"Invalid XML: {bozo_exception}")
        return ParsedFeed(format="unknown")

    items = [normalize_entry(entry, feed_format) for entry in parsed.entries]
    return ParsedFeed(
        format=feed_format,
        items=items,
        title=pick_text(parsed.feed.get("title")),
    )


class FeedFetcher:
    """Downloads feeds over HTTP and validates candidate URLs."""

    def __init__(self, config: FetchConfig | None = None, execution_id: str | None = None):
        """Initialize FeedFetcher with configuration.

        Args:
            config: Timeouts and user agent for downloads
            execution_id: Execution ID for logging context
        """
        self.config = config or FetchConfig()
        self.logger = create_execution_logger("feed_fetcher", execution_id)
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": self.config.user_agent, "Accept": ACCEPT_HEADER}
        )

    def fetch(self, url: str, timeout: float | None = None) -> requests.Response:
        """Issue a GET for a feed URL; the status code is left to the caller."""
        self.logger.debug("Downloading feed", feed_url=url, timeout=timeout)
        return self.session.get(url, timeout=timeout)

    def fetch_feed(self, url: str) -> ParsedFeed:
        """Download and parse a feed for the scheduled sweep.

        Raises:
            FeedFetchError: If the server answers with a non-2xx status
            FeedParseError: If the body is not XML
            UnsupportedFeedError: If the body is not RSS, Atom or RDF
            requests.RequestException: If the download itself fails
        """
        response = self.fetch(url, timeout=self.config.fetch_timeout)
        if not response.ok:
            raise FeedFetchError(response.status_code)

        feed = parse_feed(response.content)
        if feed.format == "unknown":
            raise UnsupportedFeedError()

        self.logger.info(
            "Feed downloaded and parsed",
            feed_url=url,
            feed_format=feed.format,
            items_count=len(feed.items),
        )
        return feed

    def probe(self, url: str) -> ProbeResult:
        """Check that a URL serves a usable feed before subscribing to it."""
        try:
            response = self.fetch(url, timeout=self.config.probe_timeout)
        except requests.Timeout:
            self.logger.warning("Probe timed out", feed_url=url)
            return ProbeResult(ok=False, message="Timed out while fetching the feed.")
        except requests.RequestException as e:
            self.logger.warning(f"Probe failed: {e}", feed_url=url, error=str(e))
            return ProbeResult(
                ok=False, message="An error occurred while fetching the feed."
            )

        if not response.ok:
            self.logger.info(
                "Probe got non-2xx status",
                feed_url=url,
                status_code=response.status_code,
            )
            return ProbeResult(
                ok=False,
                message=f"Failed to fetch the feed (HTTP {response.status_code}).",
            )

        try:
            feed = parse_feed(response.content)
        except FeedParseError as e:
            self.logger.info(f"Probe could not parse feed: {e}", feed_url=url)
            return ProbeResult(ok=False, message="Failed to parse the feed XML.")

        if feed.format == "unknown":
            return ProbeResult(
                ok=False, message="Could not detect an RSS/Atom feed at this URL."
            )

        return ProbeResult(ok=True, format=feed.format, title=feed.title)
