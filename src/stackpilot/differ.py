"""Compares resolved stacks with their deployed state."""

import dataclasses
import logging
import threading

from botocore.exceptions import BotoCoreError, ClientError

from stackpilot.aws.factory import ClientFactory
from stackpilot.changeset import ChangeSetManager
from stackpilot.comparators import (
    TemplateComparator,
    compare_parameters,
    compare_tags,
    template_hash,
)
from stackpilot.errors import OperationCancelledError, StackpilotError
from stackpilot.models import (
    ChangeType,
    DiffOptions,
    DiffResult,
    ParameterDiff,
    ResolvedStack,
    TagDiff,
    TemplateChange,
)

logger = logging.getLogger(__name__)

NEW_STACK_DIFF = "New stack - entire template will be created"


class Differ:
    """Builds a DiffResult for a resolved stack.

    A full diff of a changed, existing stack also previews the change through
    a CloudFormation changeset. Failing to build that changeset does not fail
    the diff: the error is logged and kept on ``DiffResult.change_set_error``.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        change_set_poll_interval: float = 2.0,
        change_set_timeout: float = 300.0,
    ):
        self._client_factory = client_factory
        self._change_set_poll_interval = change_set_poll_interval
        self._change_set_timeout = change_set_timeout
        self._template_comparator = TemplateComparator()

    def diff_stack(
        self,
        resolved: ResolvedStack,
        options: DiffOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> DiffResult:
        options = options or DiffOptions()
        client = self._client_factory.for_region(resolved.context.region)

        current = client.get_stack(resolved.name)
        if current is None:
            return self._new_stack(resolved, options)

        template_change = None
        parameter_diffs: list[ParameterDiff] = []
        tag_diffs: list[TagDiff] = []

        if options.compare_template:
            template_change = self._template_comparator.compare(
                client.get_template(resolved.name), resolved.template_body
            )
        if options.compare_parameters:
            parameter_diffs = compare_parameters(current.parameters, resolved.parameters)
        if options.compare_tags:
            tag_diffs = compare_tags(current.tags, resolved.tags)

        result = DiffResult(
            stack_name=resolved.name,
            context=resolved.context.name,
            stack_exists=True,
            template_change=template_change,
            parameter_diffs=parameter_diffs,
            tag_diffs=tag_diffs,
            options=options,
        )

        if not (result.has_changes() and options.is_full):
            return result

        manager = ChangeSetManager(
            client,
            poll_interval=self._change_set_poll_interval,
            timeout=self._change_set_timeout,
        )
        create = manager.for_deployment if options.keep_change_set else manager.preview
        try:
            change_set = create(
                resolved.name,
                resolved.template_body,
                resolved.parameters,
                resolved.tags,
                resolved.capabilities,
                cancel=cancel,
            )
        except OperationCancelledError:
            raise
        except (StackpilotError, ClientError, BotoCoreError) as err:
            logger.warning("Could not generate changeset for %s: %s", resolved.name, err)
            return dataclasses.replace(result, change_set_error=err)

        return dataclasses.replace(result, change_set=change_set)

    def _new_stack(self, resolved: ResolvedStack, options: DiffOptions) -> DiffResult:
        return DiffResult(
            stack_name=resolved.name,
            context=resolved.context.name,
            stack_exists=False,
            template_change=TemplateChange(
                has_changes=True,
                current_hash="",
                proposed_hash=template_hash(resolved.template_body),
                diff=NEW_STACK_DIFF,
            ),
            parameter_diffs=[
                ParameterDiff(key, "", value, ChangeType.ADD)
                for key, value in sorted(resolved.parameters.items())
            ],
            tag_diffs=[
                TagDiff(key, "", value, ChangeType.ADD)
                for key, value in sorted(resolved.tags.items())
            ],
            options=options,
        )
