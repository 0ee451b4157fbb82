"""Creates, updates and deletes stacks and follows them to completion."""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from stackpilot.aws.factory import ClientFactory
from stackpilot.changeset import ChangeSetManager
from stackpilot.models import ChangeSetInfo, ResolvedStack, StackEvent, StackStatus
from stackpilot.waiter import StackWaiter

logger = logging.getLogger(__name__)

EventSink = Callable[[StackEvent], None]

# new stacks that declare no capabilities are created with these
DEFAULT_CREATE_CAPABILITIES = ("CAPABILITY_IAM",)


class Deployer:
    """Applies resolved stacks to CloudFormation.

    Every operation blocks until the stack reaches a terminal status,
    passing each new stack event to ``on_event`` exactly once.
    """

    def __init__(self, client_factory: ClientFactory, poll_interval: float = 5.0):
        self._client_factory = client_factory
        self._poll_interval = poll_interval

    def deploy(
        self,
        resolved: ResolvedStack,
        on_event: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Create the stack, or update it if it already exists.

        Raises NoChangesError when the update would change nothing.
        """
        client = self._client_factory.for_region(resolved.context.region)
        exists = client.stack_exists(resolved.name)

        start_time = datetime.now(UTC)
        if exists:
            logger.info("Updating stack %s", resolved.name)
            stack_id = client.update_stack(
                resolved.name,
                resolved.template_body,
                resolved.parameters,
                resolved.tags,
                resolved.capabilities,
            )
        else:
            logger.info("Creating stack %s", resolved.name)
            stack_id = client.create_stack(
                resolved.name,
                resolved.template_body,
                resolved.parameters,
                resolved.tags,
                resolved.capabilities or DEFAULT_CREATE_CAPABILITIES,
            )

        self._follow(client, stack_id, start_time, on_event, cancel)

    def execute_change_set(
        self,
        resolved: ResolvedStack,
        change_set: ChangeSetInfo,
        on_event: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Execute a changeset prepared for ``resolved`` and wait for it.

        A changeset that cannot be executed is deleted before the error is raised.
        """
        client = self._client_factory.for_region(resolved.context.region)

        start_time = datetime.now(UTC)
        logger.info("Executing changeset %s on %s", change_set.change_set_id, resolved.name)
        try:
            client.execute_change_set(change_set.change_set_id)
        except BaseException:
            ChangeSetManager(client).delete(change_set.change_set_id)
            raise

        self._follow(client, resolved.name, start_time, on_event, cancel)

    def delete(
        self,
        stack_name: str,
        region: str | None,
        on_event: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Delete a stack and wait until it is gone.

        Returns False without doing anything if the stack does not exist.
        """
        client = self._client_factory.for_region(region)
        info = client.get_stack(stack_name)
        if info is None or info.status == StackStatus.DELETE_COMPLETE:
            return False

        start_time = datetime.now(UTC)
        logger.info("Deleting stack %s", stack_name)
        client.delete_stack(stack_name)

        # deleted stacks can only be described by id
        self._follow(client, info.stack_id, start_time, on_event, cancel)
        return True

    def _follow(self, client, stack, start_time, on_event, cancel) -> None:
        waiter = StackWaiter(client, poll_interval=self._poll_interval)
        for event in waiter.watch(stack, start_time, cancel):
            if on_event is not None:
                on_event(event)
