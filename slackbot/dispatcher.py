"""
Dispatcher

Serializes outbound Slack calls through a single lane, spacing them to honour
Slack's rate limits and retrying transient failures.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .api.retry import RetryStrategy
from .api.slack import SlackClient
from .config import DispatchConfig
from .errors import DispatchError, SlackApiError
from .models import Payload

logger = logging.getLogger(__name__)


def _is_transient(error: Exception) -> bool:
    return isinstance(error, SlackApiError) and error.transient


class Dispatcher:
    """
    Sends create-or-update calls to Slack.

    Usage:
        dispatcher = Dispatcher(slack_client, DispatchConfig())
        ts = dispatcher.send("#builds", None, payload)      # create
        dispatcher.send("#builds", ts, new_payload)          # edit in place
    """

    def __init__(
        self,
        slack_client: SlackClient,
        config: Optional[DispatchConfig] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            slack_client: Slack API client
            config: Retry and rate-limit settings
            stop_event: Shutdown signal; pending retries give up once it is set
            clock: Monotonic clock (injectable for tests)
        """
        self.slack_client = slack_client
        self.config = config or DispatchConfig()
        self.stop_event = stop_event or threading.Event()
        self._clock = clock
        self._lane = threading.Lock()
        self._last_call: Optional[float] = None
        self._retry = RetryStrategy(
            max_retries=self.config.max_attempts,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            retryable_exceptions=[SlackApiError],
            is_retryable=_is_transient,
            stop_event=self.stop_event,
        )

    def send(self, channel: str, existing_message_id: Optional[str], payload: Payload) -> str:
        """
        Create a message, or edit the existing one.

        Args:
            channel: Slack channel name or ID
            existing_message_id: Timestamp of the message to edit, None to create
            payload: Rendered message

        Returns:
            Timestamp (ID) of the created or edited message

        Raises:
            DispatchError: on a permanent failure, or once retries are exhausted
        """
        message = payload.to_message()

        def call() -> str:
            with self._lane:
                self._wait_for_slot()
                try:
                    if existing_message_id is None:
                        return self.slack_client.post_message(channel, message)
                    return self.slack_client.update_message(channel, existing_message_id, message)
                finally:
                    self._last_call = self._clock()

        def on_retry(attempt: int, error: Exception) -> None:
            logger.warning('Slack call to %s failed (attempt %d/%d): %s',
                           channel, attempt, self.config.max_attempts, error)

        action = 'create' if existing_message_id is None else 'update'
        try:
            return self._retry.execute(call, on_retry=on_retry)
        except SlackApiError as e:
            raise DispatchError(
                f'failed to {action} message in {channel}: {e.error}',
                transient=e.transient,
            ) from e

    def _wait_for_slot(self) -> None:
        """Block until min_interval has passed since the previous call."""
        if self._last_call is None:
            return
        remaining = self.config.min_interval - (self._clock() - self._last_call)
        if remaining > 0:
            time.sleep(remaining)
