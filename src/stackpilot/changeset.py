"""Creation, polling and cleanup of CloudFormation changesets."""

import logging
import threading
import time
import uuid

from botocore.exceptions import BotoCoreError, ClientError

from stackpilot.aws.client import CloudFormationClient
from stackpilot.errors import (
    ChangeSetFailedError,
    ChangeSetTimeoutError,
    NoChangesError,
    OperationCancelledError,
)
from stackpilot.models import ChangeSetInfo, ChangeSetStatus, ChangeSetType
from stackpilot.polling import is_cancelled, pause

logger = logging.getLogger(__name__)

# CloudFormation fails a changeset with one of these when nothing would change,
# which includes templates whose only differences are metadata.
NO_CHANGES_PHRASES = (
    "didn't contain changes",
    "didn't include changes",
    "no updates are to be performed",
    "no updates to be performed",
)

PENDING_STATUSES = (ChangeSetStatus.CREATE_PENDING, ChangeSetStatus.CREATE_IN_PROGRESS)


def is_no_changes_reason(reason: str) -> bool:
    reason = reason.lower()
    return any(phrase in reason for phrase in NO_CHANGES_PHRASES)


class ChangeSetManager:
    """Creates changesets and waits for them to become ready.

    ``preview`` deletes the changeset once it has been described;
    ``for_deployment`` leaves it in place to be executed.
    """

    def __init__(
        self,
        client: CloudFormationClient,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
    ):
        self._client = client
        self._poll_interval = poll_interval
        self._timeout = timeout

    def preview(
        self,
        stack_name: str,
        template: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        capabilities: tuple[str, ...] | list[str] = (),
        cancel: threading.Event | None = None,
    ) -> ChangeSetInfo:
        info = self._create(
            "diff", stack_name, template, parameters, tags, capabilities, cancel
        )
        self.delete(info.change_set_id)
        return info

    def for_deployment(
        self,
        stack_name: str,
        template: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        capabilities: tuple[str, ...] | list[str] = (),
        cancel: threading.Event | None = None,
    ) -> ChangeSetInfo:
        return self._create(
            "deploy", stack_name, template, parameters, tags, capabilities, cancel
        )

    def delete(self, change_set_id: str) -> None:
        """Delete a changeset, logging rather than raising on failure."""
        try:
            self._client.delete_change_set(change_set_id)
        except (ClientError, BotoCoreError):
            logger.warning("Failed to delete changeset %s", change_set_id, exc_info=True)

    def _create(self, purpose, stack_name, template, parameters, tags, capabilities, cancel):
        change_set_type = (
            ChangeSetType.UPDATE if self._client.stack_exists(stack_name) else ChangeSetType.CREATE
        )
        name = f"stackpilot-{purpose}-{uuid.uuid4().hex[:12]}"

        change_set_id = self._client.create_change_set(
            stack_name=stack_name,
            change_set_name=name,
            template_body=template,
            parameters=parameters,
            tags=tags,
            capabilities=capabilities,
            change_set_type=change_set_type,
        )
        logger.debug("Created %s changeset %s for %s", change_set_type, change_set_id, stack_name)

        try:
            return self._wait(stack_name, change_set_id, cancel)
        except BaseException:
            self.delete(change_set_id)
            raise

    def _wait(self, stack_name, change_set_id, cancel) -> ChangeSetInfo:
        deadline = time.monotonic() + self._timeout

        while True:
            if is_cancelled(cancel):
                raise OperationCancelledError(stack_name, "changeset creation")

            info, reason = self._client.describe_change_set(change_set_id)

            if info.status == ChangeSetStatus.CREATE_COMPLETE:
                return info
            if info.status == ChangeSetStatus.FAILED:
                if is_no_changes_reason(reason):
                    raise NoChangesError(stack_name)
                raise ChangeSetFailedError(stack_name, reason or "unknown reason")
            if info.status not in PENDING_STATUSES:
                raise ChangeSetFailedError(stack_name, f"unexpected changeset status {info.status}")

            if time.monotonic() >= deadline:
                raise ChangeSetTimeoutError(stack_name, self._timeout)

            logger.debug("Changeset %s is %s, waiting", change_set_id, info.status)
            if pause(self._poll_interval, cancel):
                raise OperationCancelledError(stack_name, "changeset creation")
