"""DynamoDB-backed storage for subscriptions and per-guild indexes."""

import json

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from .logging_config import create_execution_logger
from .models import Subscription

SUBSCRIPTION_PREFIX = "sub:g:"
INDEX_PREFIX = "subindex:g:"


def subscription_key(guild_id: str, subscription_id: str) -> str:
    return f"{SUBSCRIPTION_PREFIX}{guild_id}:{subscription_id}"


def guild_index_key(guild_id: str) -> str:
    return f"{INDEX_PREFIX}{guild_id}"


class KeyValueStore:
    """String key to text value store on a single DynamoDB table.

    The table has a string partition key ``pk``; values live in ``body``.
    There are no multi-key transactions.
    """

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        """Initialize the store with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB table
            aws_region: AWS region for DynamoDB client
            execution_id: Execution ID for logging context
        """
        self.table_name = table_name
        self.aws_region = aws_region
        self.logger = create_execution_logger("storage", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

    def get(self, key: str) -> str | None:
        try:
            response = self.table.get_item(Key={"pk": key})
        except ClientError as e:
            self.logger.error(f"Error reading key {key}: {e}", key=key, error=str(e))
            raise
        item = response.get("Item")
        if item is None:
            return None
        return item.get("body")

    def put(self, key: str, value: str) -> None:
        try:
            self.table.put_item(Item={"pk": key, "body": value})
        except ClientError as e:
            self.logger.error(f"Error writing key {key}: {e}", key=key, error=str(e))
            raise

    def delete(self, key: str) -> None:
        try:
            self.table.delete_item(Key={"pk": key})
        except ClientError as e:
            self.logger.error(f"Error deleting key {key}: {e}", key=key, error=str(e))
            raise

    def list_keys(self, prefix: str) -> list[str]:
        """List every key starting with prefix, following scan pagination."""
        keys: list[str] = []
        scan_kwargs = {"FilterExpression": Attr("pk").begins_with(prefix)}

        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                keys.extend(item["pk"] for item in response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            self.logger.error(
                f"Error listing keys with prefix {prefix}: {e}",
                prefix=prefix,
                error=str(e),
            )
            raise

        return sorted(keys)


class SubscriptionStore:
    """CRUD for individual subscription records."""

    def __init__(self, kv: KeyValueStore, execution_id: str | None = None):
        self.kv = kv
        self.logger = create_execution_logger("storage", execution_id)

    def load(self, key: str) -> Subscription | None:
        """Load a record by its raw key; corrupt records read as absent."""
        raw = self.kv.get(key)
        if raw is None:
            return None
        try:
            return Subscription.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            self.logger.warning(
                f"Ignoring unreadable subscription record {key}: {e}",
                key=key,
                error=str(e),
            )
            return None

    def get(self, guild_id: str, subscription_id: str) -> Subscription | None:
        return self.load(subscription_key(guild_id, subscription_id))

    def put(self, subscription: Subscription) -> None:
        self.kv.put(
            subscription_key(subscription.guild_id, subscription.id),
            json.dumps(subscription.to_dict(), ensure_ascii=False),
        )

    def delete(self, guild_id: str, subscription_id: str) -> None:
        self.kv.delete(subscription_key(guild_id, subscription_id))

    def list_keys(self) -> list[str]:
        """Keys of every subscription across all guilds."""
        return self.kv.list_keys(SUBSCRIPTION_PREFIX)

    def list_by_guild(self, guild_id: str) -> list[Subscription]:
        """Full prefix scan of one guild's records."""
        keys = self.kv.list_keys(f"{SUBSCRIPTION_PREFIX}{guild_id}:")
        subscriptions = [self.load(key) for key in keys]
        return [sub for sub in subscriptions if sub is not None]


class GuildIndex:
    """Per-guild list of subscription ids, repaired whenever it is read.

    The index is only a cache: the individually keyed records are the
    source of truth, so every id is checked against its record and a
    missing or empty index falls back to a prefix scan.
    """

    def __init__(self, store: SubscriptionStore, execution_id: str | None = None):
        self.store = store
        self.kv = store.kv
        self.logger = create_execution_logger("storage", execution_id)

    def read(self, guild_id: str) -> list[str] | None:
        """Read the raw index, None when absent or unreadable."""
        raw = self.kv.get(guild_index_key(guild_id))
        if raw is None:
            return None
        try:
            ids = json.loads(raw)
        except ValueError:
            self.logger.warning("Ignoring unreadable guild index", guild_id=guild_id)
            return None
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            self.logger.warning("Ignoring malformed guild index", guild_id=guild_id)
            return None
        return ids

    def write(self, guild_id: str, ids: list[str]) -> None:
        self.kv.put(guild_index_key(guild_id), json.dumps(ids))

    def list_active(self, guild_id: str) -> list[Subscription]:
        """Return the guild's subscriptions, healing the index on the way."""
        index = self.read(guild_id)

        if index:
            unique_ids = list(dict.fromkeys(index))
            subscriptions = [self.store.get(guild_id, sub_id) for sub_id in unique_ids]
            valid = [sub for sub in subscriptions if sub is not None]
            if len(valid) != len(index):
                self.logger.info(
                    "Dropping stale or repeated ids from guild index",
                    guild_id=guild_id,
                    stale_count=len(index) - len(valid),
                )
                self.write(guild_id, [sub.id for sub in valid])
            return valid

        fallback = self.store.list_by_guild(guild_id)
        if fallback:
            self.logger.info(
                "Rebuilding guild index from full scan",
                guild_id=guild_id,
                subscription_count=len(fallback),
            )
            self.write(guild_id, [sub.id for sub in fallback])
        return fallback

    def add(self, guild_id: str, subscription_id: str) -> None:
        index = self.read(guild_id) or []
        if subscription_id not in index:
            index.append(subscription_id)
            self.write(guild_id, index)

    def remove(self, guild_id: str, subscription_id: str) -> None:
        index = self.read(guild_id) or []
        remaining = [sub_id for sub_id in index if sub_id != subscription_id]
        if len(remaining) != len(index):
            self.write(guild_id, remaining)
