"""Scheduled Lambda handler for Feed Relay."""

import json
import os
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .config import Config
from .discord import DiscordNotifier
from .feeds import FeedFetcher
from .logging_config import create_execution_logger, setup_structured_logging
from .scheduler import FeedChecker
from .storage import KeyValueStore, SubscriptionStore

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

METRICS_NAMESPACE = "Feed-Relay"


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Run one feed check cycle on the schedule.

    Args:
        event: Lambda event data
        context: Lambda context object

    Returns:
        Response dictionary with status and cycle metrics
    """
    execution_id = f"lambda_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)

    main_logger.log_execution_start(
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
        lambda_function_name=getattr(context, "function_name", "unknown"),
    )

    aws_region = "us-east-1"
    try:
        config = Config()
        aws_region = config.aws_region

        discord_config = config.get_discord_config()
        discord_config.bot_token = get_bot_token(
            config.discord_secret_name, config.aws_region, execution_id
        )

        kv = KeyValueStore(config.table_name, config.aws_region, execution_id)
        checker = FeedChecker(
            store=SubscriptionStore(kv, execution_id),
            fetcher=FeedFetcher(config.get_fetch_config(), execution_id),
            notifier=DiscordNotifier(discord_config, execution_id),
            backoff=config.get_backoff_config(),
            execution_id=execution_id,
        )

        metrics = checker.run_cycle()
        main_logger.log_metrics(metrics)
        send_cloudwatch_metrics(metrics, aws_region, execution_id)
        main_logger.log_execution_end(success=True)

        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "Feed check completed",
                    "execution_id": execution_id,
                    "metrics": metrics,
                }
            ),
        }

    except Exception as e:
        error_msg = f"Critical error in Lambda handler: {e}"
        main_logger.error(error_msg, error=str(e))
        main_logger.log_execution_end(success=False, error=error_msg)

        return {
            "statusCode": 500,
            "body": json.dumps(
                {
                    "message": "Feed check failed",
                    "execution_id": execution_id,
                    "error": error_msg,
                }
            ),
        }


def get_bot_token(secret_name: str, aws_region: str, execution_id: str) -> str:
    """
    Retrieve the Discord bot token from AWS Secrets Manager.

    Accepts both a plain string secret and a JSON object secret holding the
    token under one of the usual key names.

    Raises:
        RuntimeError: If the secret cannot be retrieved or holds no token
        ValueError: If the secret name or region is empty
    """
    secrets_logger = create_execution_logger("secrets_manager", execution_id)

    if not secret_name or not secret_name.strip():
        raise ValueError("Secret name cannot be empty")

    if not aws_region or not aws_region.strip():
        raise ValueError("AWS region cannot be empty")

    try:
        secrets_logger.info(f"Retrieving Discord token from Secrets Manager: {secret_name}")
        secrets_client = boto3.client("secretsmanager", region_name=aws_region)
        response = secrets_client.get_secret_value(SecretId=secret_name)

        secret_value = (response.get("SecretString") or "").strip()
        if not secret_value:
            raise ValueError(f"Secret {secret_name} contains empty value")

        try:
            secret_data = json.loads(secret_value)
        except json.JSONDecodeError:
            return secret_value

        if not isinstance(secret_data, dict):
            raise ValueError(f"JSON secret {secret_name} must be an object")

        for key in ("token", "bot_token", "discord_token", "discord_bot_token"):
            value = secret_data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

        raise ValueError(f"No token found in JSON secret {secret_name}")

    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        secrets_logger.error(
            f"AWS Secrets Manager error retrieving {secret_name}: {error_code}"
        )
        raise RuntimeError(f"Failed to retrieve secret {secret_name}") from e
    except ValueError as e:
        secrets_logger.error(f"Invalid secret format for {secret_name}: {e}")
        raise RuntimeError(f"Invalid secret format for {secret_name}") from e


def send_cloudwatch_metrics(
    metrics: dict[str, Any], aws_region: str, execution_id: str
) -> None:
    """
    Send cycle metrics to CloudWatch.

    Failures are logged and never raised.
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    counters = {
        "SubscriptionsFound": metrics.get("subscriptions_found", 0),
        "SubscriptionsChecked": metrics.get("subscriptions_checked", 0),
        "SubscriptionsSkipped": metrics.get("subscriptions_skipped", 0),
        "SubscriptionsFailed": metrics.get("subscriptions_failed", 0),
        "MessagesSent": metrics.get("messages_sent", 0),
        "Errors": len(metrics.get("errors", [])),
    }

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)
        cloudwatch.put_metric_data(
            Namespace=METRICS_NAMESPACE,
            MetricData=[
                {"MetricName": name, "Value": value, "Unit": "Count"}
                for name, value in counters.items()
            ],
        )
        metrics_logger.info(
            "Sent metrics to CloudWatch",
            metrics_sent=len(counters),
            namespace=METRICS_NAMESPACE,
        )
    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
