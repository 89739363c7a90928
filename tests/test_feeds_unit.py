"""Unit tests for feed parsing and normalization."""

import pytest

from conftest import (
    EMPTY_ATOM_XML,
    HTML_PAGE,
    NOT_A_FEED_XML,
    SAMPLE_ATOM_XML,
    SAMPLE_RDF_XML,
    SAMPLE_RSS_XML,
)
from feedrelay.feeds import (
    NO_TITLE,
    FeedParseError,
    clean_html,
    detect_format,
    normalize_entry,
    normalize_feed_title,
    parse_date,
    parse_feed,
    pick_link,
    pick_text,
)

JAN_1_10AM = 1704103200000
JAN_2_10AM = 1704189600000
JAN_3_10AM = 1704276000000


class TestParseFeedUnit:
    """Format detection and item extraction on real documents."""

    def test_rss_2_0_parsing(self):
        feed = parse_feed(SAMPLE_RSS_XML)

        assert feed.format == "rss"
        assert normalize_feed_title(feed.title) == "Example News"
        assert [item.id for item in feed.items] == ["item-3", "item-2", "item-1"]

        first = feed.items[0]
        assert first.title == "Day three"
        assert first.link == "https://example.com/3"
        assert first.date == JAN_3_10AM
        assert first.summary == "Third story"
        assert feed.items[2].date == JAN_1_10AM

    def test_rss_accepts_bytes(self):
        feed = parse_feed(SAMPLE_RSS_XML.encode("utf-8"))

        assert feed.format == "rss"
        assert len(feed.items) == 3

    def test_atom_1_0_parsing(self):
        feed = parse_feed(SAMPLE_ATOM_XML)

        assert feed.format == "atom"
        assert feed.title == "Atom Example"

        second, first = feed.items
        assert second.id == "tag:example.com,2024:2"
        assert second.link == "https://example.com/2"
        # updated wins over published for Atom
        assert second.date == 1704196800000
        assert second.summary == "Second entry"

        assert first.link == "https://example.com/1"
        assert first.date == 1704096000000
        assert first.summary == "First content"

    def test_rdf_parsing(self):
        feed = parse_feed(SAMPLE_RDF_XML)

        assert feed.format == "rdf"
        assert feed.title == "RDF Example"
        assert len(feed.items) == 1

        item = feed.items[0]
        assert item.id == "https://example.com/rdf/1"
        assert item.link == "https://example.com/rdf/1"
        assert item.date == 1704067200000
        assert item.summary == "First RDF item"

    def test_empty_atom_feed_is_recognised(self):
        feed = parse_feed(EMPTY_ATOM_XML)

        assert feed.format == "atom"
        assert feed.items == []
        assert feed.title == "Quiet Feed"

    def test_well_formed_non_feed_is_unknown(self):
        feed = parse_feed(NOT_A_FEED_XML)

        assert feed.format == "unknown"
        assert feed.items == []
        assert feed.title is None

    def test_html_page_is_unknown(self):
        feed = parse_feed(HTML_PAGE)

        assert feed.format == "unknown"
        assert feed.items == []

    def test_non_xml_raises_parse_error(self):
        with pytest.raises(FeedParseError):
            parse_feed("this is not xml at all")

    def test_truncated_rss_still_parses(self):
        document = (
            '<rss version="2.0"><channel><title>Broken</title>'
            "<item><title>Only item</title><guid>only</guid>"
        )

        feed = parse_feed(document)

        assert feed.format == "rss"
        assert [item.id for item in feed.items] == ["only"]

    def test_rss_item_without_guid_uses_link(self):
        document = """<rss version="2.0"><channel><title>T</title>
            <item><title>No guid</title><link>https://example.com/x</link></item>
            <item><title>Title only</title></item>
            </channel></rss>"""

        feed = parse_feed(document)

        assert feed.items[0].id == "https://example.com/x"
        assert feed.items[1].id == "Title only"
        assert feed.items[1].link is None
        assert feed.items[1].date is None

    def test_unparseable_date_is_absent(self):
        document = """<rss version="2.0"><channel><title>T</title>
            <item><title>A</title><guid>a</guid><pubDate>not a date</pubDate></item>
            </channel></rss>"""

        feed = parse_feed(document)

        assert feed.items[0].date is None


class TestNormalizeEntryUnit:
    """Field precedence rules applied to raw entries."""

    def test_missing_title_gets_placeholder(self):
        item = normalize_entry({}, "rss")

        assert item.title == NO_TITLE
        assert item.id == NO_TITLE
        assert item.link is None
        assert item.summary is None

    def test_rss_prefers_published_over_updated(self):
        entry = {
            "title": "A",
            "published": "Tue, 02 Jan 2024 10:00:00 GMT",
            "updated": "Mon, 01 Jan 2024 10:00:00 GMT",
        }

        assert normalize_entry(entry, "rss").date == JAN_2_10AM

    def test_atom_prefers_updated_over_published(self):
        entry = {
            "title": "A",
            "published": "2024-01-02T10:00:00Z",
            "updated": "2024-01-01T10:00:00Z",
        }

        assert normalize_entry(entry, "atom").date == JAN_1_10AM

    def test_atom_link_prefers_alternate(self):
        entry = {
            "title": "A",
            "links": [
                {"rel": "self", "href": "https://example.com/self"},
                {"rel": "alternate", "href": "https://example.com/page"},
            ],
        }

        item = normalize_entry(entry, "atom")

        assert item.link == "https://example.com/page"
        assert item.id == "https://example.com/page"

    def test_atom_summary_falls_back_to_content(self):
        entry = {"title": "A", "content": [{"type": "text/html", "value": "<b>Body</b>"}]}

        assert normalize_entry(entry, "atom").summary == "Body"

    def test_blank_guid_falls_through_to_link(self):
        entry = {"title": "A", "id": "   ", "link": "https://example.com/a"}

        assert normalize_entry(entry, "rss").id == "https://example.com/a"


class TestFieldHelpersUnit:
    """Text, link and date extraction helpers."""

    def test_pick_text_variants(self):
        assert pick_text("plain") == "plain"
        assert pick_text(42) == "42"
        assert pick_text({"value": "payload"}) == "payload"
        assert pick_text({"text": "generic"}) == "generic"
        assert pick_text([{"value": "first"}, {"value": "second"}]) == "first"
        assert pick_text({"other": "x"}) is None
        assert pick_text(None) is None
        assert pick_text("   ") is None

    def test_pick_link_variants(self):
        assert pick_link("https://example.com") == "https://example.com"
        assert pick_link({"href": "https://example.com/h"}) == "https://example.com/h"
        assert pick_link({"url": "https://example.com/u"}) == "https://example.com/u"
        assert (
            pick_link(
                [
                    {"rel": "enclosure", "href": "https://example.com/e"},
                    {"rel": "self", "href": "https://example.com/s"},
                ]
            )
            == "https://example.com/e"
        )
        assert pick_link([]) is None
        assert pick_link(None) is None

    def test_parse_date_formats(self):
        assert parse_date("Mon, 01 Jan 2024 10:00:00 GMT") == JAN_1_10AM
        assert parse_date("2024-01-01T10:00:00Z") == JAN_1_10AM
        assert parse_date("2024-01-01T11:00:00+01:00") == JAN_1_10AM
        # Naive timestamps are read as UTC
        assert parse_date("2024-01-01 10:00:00") == JAN_1_10AM
        assert parse_date("garbage") is None
        assert parse_date(None) is None

    def test_detect_format(self):
        assert detect_format("rss20") == "rss"
        assert detect_format("rss091u") == "rss"
        assert detect_format("rss10") == "rdf"
        assert detect_format("rss090") == "rdf"
        assert detect_format("atom10") == "atom"
        assert detect_format("") == "unknown"
        assert detect_format("cdf") == "unknown"

    def test_normalize_feed_title(self):
        assert normalize_feed_title("  Hello \n  World ") == "Hello World"
        assert normalize_feed_title("   ") is None
        assert normalize_feed_title(None) is None

        long_title = "x" * 250
        normalized = normalize_feed_title(long_title)
        assert len(normalized) == 200
        assert normalized.endswith("...")

    def test_clean_html(self):
        assert clean_html("<p>Simple paragraph</p>") == "Simple paragraph"
        assert clean_html("<script>alert('x')</script><p>Safe</p>") == "Safe"
        assert clean_html("Plain  \n text") == "Plain text"
        assert clean_html("") == ""
        assert clean_html(None) == ""
