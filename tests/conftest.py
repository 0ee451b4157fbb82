"""Shared test fixtures."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

from stackpilot.models import Context, ResolvedStack, StackEvent, StackInfo, StackStatus


@pytest.fixture
def aws_credentials(monkeypatch):
    """Set dummy AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def cfn_client(aws_credentials):
    """Create a moto-mocked CloudFormation boto3 client."""
    with mock_aws():
        yield boto3.client("cloudformation", region_name="us-east-1")


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def client_factory(mock_client):
    """A ClientFactory stand-in handing out ``mock_client`` for every region."""
    factory = MagicMock()
    factory.for_region.return_value = mock_client
    return factory


SIMPLE_TEMPLATE = """{
    "AWSTemplateFormatVersion": "2010-09-09",
    "Resources": {
        "MyQueue": {
            "Type": "AWS::SQS::Queue",
            "Properties": {
                "QueueName": "my-test-queue"
            }
        }
    }
}"""

TAGGED_TEMPLATE = """{
    "AWSTemplateFormatVersion": "2010-09-09",
    "Resources": {
        "MyBucket": {
            "Type": "AWS::S3::Bucket"
        }
    }
}"""

PARAMETER_TEMPLATE = """{
    "AWSTemplateFormatVersion": "2010-09-09",
    "Parameters": {
        "QueueName": {"Type": "String"}
    },
    "Resources": {
        "MyQueue": {
            "Type": "AWS::SQS::Queue",
            "Properties": {
                "QueueName": {"Ref": "QueueName"}
            }
        }
    },
    "Outputs": {
        "QueueUrl": {"Value": {"Ref": "MyQueue"}}
    }
}"""

STACK_ID = "arn:aws:cloudformation:us-east-1:123456789012:stack/my-stack/uuid"

START_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def make_resolved(name="my-stack", region="us-east-1", **kwargs) -> ResolvedStack:
    defaults = {
        "template_body": SIMPLE_TEMPLATE,
        "parameters": {},
        "tags": {},
    }
    defaults.update(kwargs)
    return ResolvedStack(name=name, context=Context(name="dev", region=region), **defaults)


def make_stack_info(name="my-stack", status=StackStatus.CREATE_COMPLETE, **kwargs) -> StackInfo:
    stack_id = STACK_ID.replace("my-stack", name)
    return StackInfo(stack_id=stack_id, name=name, status=status, **kwargs)


def make_event(event_id, seconds=0, status="CREATE_IN_PROGRESS", logical_id="MyQueue"):
    return StackEvent(
        event_id=event_id,
        stack_name="my-stack",
        logical_id=logical_id,
        physical_id="",
        resource_type="AWS::SQS::Queue",
        timestamp=START_TIME.replace(second=seconds),
        status=status,
    )
