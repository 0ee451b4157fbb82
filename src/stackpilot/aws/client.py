"""Thin boto3 wrapper for the CloudFormation calls stackpilot needs."""

import json
import logging

import boto3
from botocore.exceptions import ClientError

from stackpilot.errors import NoChangesError
from stackpilot.models import (
    ChangeSetInfo,
    ChangeSetStatus,
    ChangeSetType,
    ResourceChange,
    StackEvent,
    StackInfo,
    StackStatus,
)

logger = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"


def _is_not_found(error: ClientError) -> bool:
    message = error.response.get("Error", {}).get("Message", "")
    return "does not exist" in message


def _to_parameters(parameters: dict[str, str]) -> list[dict[str, str]]:
    return [{"ParameterKey": k, "ParameterValue": v} for k, v in sorted(parameters.items())]


def _to_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


class CloudFormationClient:
    """Wraps boto3 CloudFormation calls and returns stackpilot dataclasses."""

    def __init__(self, region: str | None = None, session: boto3.Session | None = None):
        self.region = region
        session = session or boto3.Session()
        kwargs = {"region_name": region} if region else {}
        self._client = session.client("cloudformation", **kwargs)

    def get_stack(self, stack_name: str) -> StackInfo | None:
        """Describe a stack by name or id. Returns None if it does not exist."""
        try:
            resp = self._client.describe_stacks(StackName=stack_name)
        except ClientError as err:
            if _is_not_found(err):
                return None
            raise

        if not resp["Stacks"]:
            return None
        stack = resp["Stacks"][0]

        return StackInfo(
            stack_id=stack["StackId"],
            name=stack["StackName"],
            status=StackStatus(stack["StackStatus"]),
            description=stack.get("Description", ""),
            parameters={
                p["ParameterKey"]: p.get("ParameterValue", "") for p in stack.get("Parameters", [])
            },
            outputs={o["OutputKey"]: o.get("OutputValue", "") for o in stack.get("Outputs", [])},
            tags={t["Key"]: t["Value"] for t in stack.get("Tags", [])},
            created_at=stack.get("CreationTime"),
            updated_at=stack.get("LastUpdatedTime"),
        )

    def stack_exists(self, stack_name: str) -> bool:
        stack = self.get_stack(stack_name)
        return stack is not None and stack.status != StackStatus.DELETE_COMPLETE

    def list_stacks(self) -> list[StackInfo]:
        """List all stacks that have not been deleted."""
        paginator = self._client.get_paginator("list_stacks")
        stacks = []
        for page in paginator.paginate():
            for summary in page["StackSummaries"]:
                if summary["StackStatus"] == StackStatus.DELETE_COMPLETE:
                    continue
                stacks.append(
                    StackInfo(
                        stack_id=summary["StackId"],
                        name=summary["StackName"],
                        status=StackStatus(summary["StackStatus"]),
                        description=summary.get("TemplateDescription", ""),
                        created_at=summary.get("CreationTime"),
                        updated_at=summary.get("LastUpdatedTime"),
                    )
                )
        return stacks

    def get_template(self, stack_name: str) -> str:
        """Fetch the deployed template body.

        botocore decodes JSON template bodies into dicts; those are serialised
        back to text so callers always receive a string.
        """
        resp = self._client.get_template(StackName=stack_name)
        body = resp["TemplateBody"]
        if isinstance(body, str):
            return body
        return json.dumps(body, indent=2)

    def validate_template(self, template_body: str) -> dict:
        return self._client.validate_template(TemplateBody=template_body)

    def create_stack(
        self,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        capabilities: tuple[str, ...] | list[str] = (),
    ) -> str:
        """Start creating a stack. Returns the stack id."""
        resp = self._client.create_stack(
            StackName=stack_name,
            TemplateBody=template_body,
            Parameters=_to_parameters(parameters),
            Tags=_to_tags(tags),
            Capabilities=list(capabilities),
        )
        return resp["StackId"]

    def update_stack(
        self,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        capabilities: tuple[str, ...] | list[str] = (),
    ) -> str:
        """Start updating a stack. Returns the stack id.

        Raises NoChangesError when CloudFormation reports nothing to update.
        """
        try:
            resp = self._client.update_stack(
                StackName=stack_name,
                TemplateBody=template_body,
                Parameters=_to_parameters(parameters),
                Tags=_to_tags(tags),
                Capabilities=list(capabilities),
            )
        except ClientError as err:
            message = err.response.get("Error", {}).get("Message", "")
            if NO_UPDATES_MESSAGE.lower() in message.lower():
                raise NoChangesError(stack_name) from err
            raise
        return resp["StackId"]

    def delete_stack(self, stack_name: str) -> None:
        self._client.delete_stack(StackName=stack_name)

    def create_change_set(
        self,
        stack_name: str,
        change_set_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        capabilities: tuple[str, ...] | list[str],
        change_set_type: ChangeSetType,
    ) -> str:
        """Start creating a changeset. Returns the changeset id."""
        resp = self._client.create_change_set(
            StackName=stack_name,
            ChangeSetName=change_set_name,
            TemplateBody=template_body,
            Parameters=_to_parameters(parameters),
            Tags=_to_tags(tags),
            Capabilities=list(capabilities),
            ChangeSetType=change_set_type.value,
        )
        return resp["Id"]

    def describe_change_set(self, change_set_id: str) -> tuple[ChangeSetInfo, str]:
        """Describe a changeset. Returns the info and the raw status reason."""
        kwargs: dict = {"ChangeSetName": change_set_id}
        changes = []
        status = ""
        status_reason = ""
        stack_name = ""

        while True:
            resp = self._client.describe_change_set(**kwargs)
            status = resp["Status"]
            status_reason = resp.get("StatusReason", "")
            stack_name = resp.get("StackName", "")

            for change in resp.get("Changes", []):
                rc = change.get("ResourceChange")
                if rc is None:
                    continue
                details = []
                for detail in rc.get("Details", []):
                    target = detail.get("Target")
                    if not target:
                        continue
                    text = f"Property: {target.get('Name', '')}"
                    if target.get("Attribute"):
                        text += f" ({target['Attribute']})"
                    details.append(text)
                changes.append(
                    ResourceChange(
                        action=rc.get("Action", ""),
                        resource_type=rc.get("ResourceType", ""),
                        logical_id=rc.get("LogicalResourceId", ""),
                        physical_id=rc.get("PhysicalResourceId", ""),
                        replacement=rc.get("Replacement", ""),
                        details=details,
                    )
                )

            next_token = resp.get("NextToken")
            if not next_token:
                break
            kwargs["NextToken"] = next_token

        info = ChangeSetInfo(
            change_set_id=change_set_id,
            status=ChangeSetStatus(status),
            changes=changes,
            stack_name=stack_name,
        )
        return info, status_reason

    def execute_change_set(self, change_set_id: str) -> None:
        self._client.execute_change_set(ChangeSetName=change_set_id)

    def delete_change_set(self, change_set_id: str) -> None:
        self._client.delete_change_set(ChangeSetName=change_set_id)

    def describe_stack_events(self, stack_name: str) -> list[StackEvent]:
        """Fetch the full event history of a stack, newest first."""
        paginator = self._client.get_paginator("describe_stack_events")
        events = []
        for page in paginator.paginate(StackName=stack_name):
            for event in page["StackEvents"]:
                events.append(
                    StackEvent(
                        event_id=event["EventId"],
                        stack_name=event["StackName"],
                        logical_id=event.get("LogicalResourceId", ""),
                        physical_id=event.get("PhysicalResourceId", ""),
                        resource_type=event.get("ResourceType", ""),
                        timestamp=event["Timestamp"],
                        status=event.get("ResourceStatus", ""),
                        reason=event.get("ResourceStatusReason"),
                    )
                )
        return events
