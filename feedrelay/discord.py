"""Discord notification sink for Feed Relay."""

import json
import time
import urllib.error
import urllib.request

from .config import DiscordConfig
from .logging_config import create_execution_logger


class NotificationError(Exception):
    """Raised when Discord rejects a message."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Discord post failed ({status}): {body}")
        self.status = status
        self.body = body


class DiscordNotifier:
    """Posts plain-text messages into Discord channels."""

    def __init__(self, config: DiscordConfig, execution_id: str | None = None):
        """Initialize the notifier with configuration."""
        self.config = config
        self.logger = create_execution_logger("discord_notifier", execution_id)

    def handle_rate_limit(self, retry_count: int) -> None:
        """
        Handle rate limiting with exponential backoff.

        Args:
            retry_count: Current retry attempt number
        """
        backoff_time = self.config.backoff_factor**retry_count
        self.logger.warning(
            f"Rate limited, waiting {backoff_time} seconds before retry {retry_count + 1}",
            retry_count=retry_count,
            backoff_time=backoff_time,
        )
        time.sleep(backoff_time)

    def send_message(self, channel_id: str, text: str) -> None:
        """
        Send a message to a channel.

        Args:
            channel_id: Discord channel to post into
            text: Message content

        Raises:
            NotificationError: If Discord answers with a non-2xx status
            urllib.error.URLError: If Discord cannot be reached
        """
        url = f"{self.config.api_base}/channels/{channel_id}/messages"
        payload = json.dumps({"content": text}).encode("utf-8")

        for attempt in range(self.config.retry_attempts):
            req = urllib.request.Request(
                url,
                data=payload,
                method="POST",
                headers={
                    "Authorization": f"Bot {self.config.bot_token}",
                    "Content-Type": "application/json",
                    "User-Agent": "feed-relay/1.0",
                },
            )

            try:
                with urllib.request.urlopen(req, timeout=30) as response:
                    self.logger.debug(
                        "Message posted to Discord",
                        channel_id=channel_id,
                        status_code=response.status,
                        message_length=len(text),
                    )
                    return

            except urllib.error.HTTPError as e:
                body = e.read().decode("utf-8", errors="replace")
                if e.code == 429 and attempt < self.config.retry_attempts - 1:
                    self.handle_rate_limit(attempt)
                    continue

                self.logger.error(
                    f"Discord returned status {e.code}",
                    channel_id=channel_id,
                    http_code=e.code,
                )
                raise NotificationError(e.code, body) from e

        # Only reachable when retry_attempts is zero
        raise NotificationError(0, "no attempts configured")
