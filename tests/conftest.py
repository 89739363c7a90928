"""Shared fixtures and sample documents for Feed Relay tests."""

import os

import boto3
import pytest
from moto import mock_aws

from feedrelay.storage import GuildIndex, KeyValueStore, SubscriptionStore

# Fake credentials so boto3 never reaches a real account
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

TABLE_NAME = "feed-relay-test"

SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>  Example   News  </title>
    <link>https://example.com</link>
    <description>An example feed</description>
    <item>
      <title>Day three</title>
      <link>https://example.com/3</link>
      <guid>item-3</guid>
      <description>&lt;p&gt;Third &lt;b&gt;story&lt;/b&gt;&lt;/p&gt;</description>
      <pubDate>Wed, 03 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Day two</title>
      <link>https://example.com/2</link>
      <guid>item-2</guid>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Day one</title>
      <link>https://example.com/1</link>
      <guid>item-1</guid>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <id>tag:example.com,2024:feed</id>
  <updated>2024-01-02T12:00:00Z</updated>
  <entry>
    <title>Entry two</title>
    <id>tag:example.com,2024:2</id>
    <link rel="self" href="https://example.com/self/2"/>
    <link rel="alternate" href="https://example.com/2"/>
    <updated>2024-01-02T12:00:00Z</updated>
    <published>2024-01-01T00:00:00Z</published>
    <summary>Second entry</summary>
  </entry>
  <entry>
    <title>Entry one</title>
    <id>tag:example.com,2024:1</id>
    <link href="https://example.com/1"/>
    <published>2024-01-01T08:00:00Z</published>
    <content type="html">&lt;p&gt;First content&lt;/p&gt;</content>
  </entry>
</feed>"""

SAMPLE_RDF_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="https://example.com/">
    <title>RDF Example</title>
    <link>https://example.com/</link>
    <description>An RDF feed</description>
  </channel>
  <item rdf:about="https://example.com/rdf/1">
    <title>RDF one</title>
    <link>https://example.com/rdf/1</link>
    <description>First RDF item</description>
    <dc:date>2024-01-01T00:00:00Z</dc:date>
  </item>
</rdf:RDF>"""

EMPTY_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Quiet Feed</title>
  <id>tag:example.com,2024:quiet</id>
  <updated>2024-01-01T00:00:00Z</updated>
</feed>"""

NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html><body><p>Just a page</p></body></html>"""

HTML_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=utf-8><title>Blog</title></head>"
    "<body><p>Welcome<br>to the blog</p></body></html>"
)


@pytest.fixture
def kv_store():
    """KeyValueStore on a moto-backed DynamoDB table."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="us-east-1")
        client.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield KeyValueStore(TABLE_NAME, "us-east-1")


@pytest.fixture
def subscription_store(kv_store):
    return SubscriptionStore(kv_store)


@pytest.fixture
def guild_index(subscription_store):
    return GuildIndex(subscription_store)
