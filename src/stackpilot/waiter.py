"""Polls a stack operation to completion, streaming its events."""

import logging
import threading
from collections.abc import Iterator
from datetime import datetime

from stackpilot.aws.client import CloudFormationClient
from stackpilot.errors import OperationCancelledError, StackOperationFailedError
from stackpilot.models import StackEvent, StackStatus
from stackpilot.polling import is_cancelled, pause

logger = logging.getLogger(__name__)


class StackWaiter:
    """Waits for a stack to reach a terminal status."""

    def __init__(self, client: CloudFormationClient, poll_interval: float = 5.0):
        self._client = client
        self._poll_interval = poll_interval

    def watch(
        self,
        stack: str,
        start_time: datetime,
        cancel: threading.Event | None = None,
    ) -> Iterator[StackEvent]:
        """Yield each new event of the current operation once, oldest first.

        ``stack`` is a stack name or id. Events stamped before ``start_time``
        belong to earlier operations and are skipped. The generator returns
        when the stack reaches a successful terminal status and raises
        StackOperationFailedError on a failed or rolled back one.
        """
        seen: set[str] = set()

        while True:
            if is_cancelled(cancel):
                raise OperationCancelledError(stack, "stack operation")

            info = self._client.get_stack(stack)
            if info is None:
                raise StackOperationFailedError(stack, "stack no longer exists")

            events = self._client.describe_stack_events(stack)
            current = [e for e in events if e.timestamp >= start_time]
            # reversed: the API lists newest first; sort is stable for equal timestamps
            for event in sorted(reversed(current), key=lambda e: e.timestamp):
                if event.event_id in seen:
                    continue
                seen.add(event.event_id)
                yield event

            if info.status.is_terminal:
                if info.status.is_successful:
                    return
                raise StackOperationFailedError(info.name, info.status)

            logger.debug("Stack %s is %s, waiting", info.name, info.status)
            if pause(self._poll_interval, cancel):
                raise OperationCancelledError(info.name, "stack operation")
