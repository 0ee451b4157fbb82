"""Tests for the CLI entrypoint."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from stackpilot.cli import main
from stackpilot.errors import (
    ChangeSetFailedError,
    NoChangesError,
    StackOperationFailedError,
    StackResolutionError,
)
from stackpilot.models import (
    ChangeSetInfo,
    ChangeSetStatus,
    ChangeType,
    Config,
    ContextConfig,
    DiffResult,
    ParameterDiff,
    StackStatus,
    TemplateChange,
)
from tests.conftest import make_resolved, make_stack_info


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def services():
    """Patch every collaborator the CLI builds and yield the mocks."""
    with (
        patch("stackpilot.cli.FileConfigProvider") as provider_cls,
        patch("stackpilot.cli.ClientFactory") as factory_cls,
        patch("stackpilot.cli.StackResolver") as resolver_cls,
        patch("stackpilot.cli.Differ") as differ_cls,
        patch("stackpilot.cli.Deployer") as deployer_cls,
        patch("stackpilot.cli.ChangeSetManager") as manager_cls,
    ):
        mocks = MagicMock()
        mocks.provider = provider_cls.return_value
        mocks.provider_cls = provider_cls
        mocks.factory = factory_cls.return_value
        mocks.resolver = resolver_cls.return_value
        mocks.differ = differ_cls.return_value
        mocks.deployer = deployer_cls.return_value
        mocks.manager = manager_cls.return_value

        mocks.provider.load_config.return_value = Config(
            project="shop",
            region="us-east-1",
            tags={},
            context=ContextConfig(name="dev", region="us-east-1"),
            stacks=[],
        )
        mocks.resolver.resolve_stack.side_effect = lambda context, name: make_resolved(name)
        yield mocks


def _new_stack_result(name="my-stack"):
    return DiffResult(
        stack_name=name,
        context="dev",
        stack_exists=False,
        template_change=TemplateChange(
            has_changes=True,
            current_hash="",
            proposed_hash="cccccccccccc",
            diff="New stack - entire template will be created",
        ),
    )


def _changed_result(name="my-stack", **kwargs):
    defaults = {
        "stack_name": name,
        "context": "dev",
        "stack_exists": True,
        "parameter_diffs": [ParameterDiff("Size", "small", "large", ChangeType.MODIFY)],
        "change_set": ChangeSetInfo(
            change_set_id="cs-arn", status=ChangeSetStatus.CREATE_COMPLETE
        ),
    }
    defaults.update(kwargs)
    return DiffResult(**defaults)


def _unchanged_result(name="my-stack"):
    return DiffResult(
        stack_name=name,
        context="dev",
        stack_exists=True,
        template_change=TemplateChange(has_changes=False, current_hash="a", proposed_hash="a"),
    )


def test_config_option_and_env(runner, services):
    services.provider.list_stacks.return_value = []

    runner.invoke(main, ["-f", "custom.yaml", "deploy", "-c", "dev"])
    services.provider_cls.assert_called_with("custom.yaml")

    runner.invoke(main, ["deploy", "-c", "dev"], env={"STACKPILOT_CONFIG": "env.yaml"})
    services.provider_cls.assert_called_with("env.yaml")

    runner.invoke(main, ["deploy", "-c", "dev"])
    services.provider_cls.assert_called_with("stackpilot.yaml")


def test_context_is_required(runner, services):
    result = runner.invoke(main, ["deploy"])

    assert result.exit_code == 2
    assert "--context" in result.output


def test_deploy_new_stacks_in_dependency_order(runner, services):
    services.provider.list_stacks.return_value = ["app", "vpc"]
    services.resolver.get_dependency_order.return_value = ["vpc", "app"]
    services.differ.diff_stack.side_effect = lambda resolved, options: _new_stack_result(
        resolved.name
    )

    result = runner.invoke(main, ["deploy", "-c", "dev", "--yes"])

    assert result.exit_code == 0, result.output
    services.resolver.get_dependency_order.assert_called_once_with("dev", ["app", "vpc"])
    deployed = [c.args[0].name for c in services.deployer.deploy.call_args_list]
    assert deployed == ["vpc", "app"]
    assert "Stack app deployed" in result.output


def test_deploy_resolves_each_stack_after_previous_deploy(runner, services):
    calls = []
    services.resolver.get_dependency_order.return_value = ["vpc", "app"]
    services.resolver.resolve_stack.side_effect = lambda context, name: (
        calls.append(("resolve", name)) or make_resolved(name)
    )
    services.differ.diff_stack.side_effect = lambda resolved, options: _new_stack_result(
        resolved.name
    )
    services.deployer.deploy.side_effect = lambda resolved, on_event: calls.append(
        ("deploy", resolved.name)
    )

    result = runner.invoke(main, ["deploy", "app", "-c", "dev", "-y"])

    assert result.exit_code == 0, result.output
    assert calls == [
        ("resolve", "vpc"),
        ("deploy", "vpc"),
        ("resolve", "app"),
        ("deploy", "app"),
    ]


def test_deploy_new_stack_declined(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _new_stack_result()

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev"], input="n\n")

    assert result.exit_code == 0
    assert "Skipped stack my-stack" in result.output
    services.deployer.deploy.assert_not_called()


def test_deploy_existing_stack_executes_change_set(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _changed_result()

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev"], input="y\n")

    assert result.exit_code == 0, result.output
    options = services.differ.diff_stack.call_args.args[1]
    assert options.keep_change_set
    assert "Size: small → large" in result.output
    resolved, change_set = services.deployer.execute_change_set.call_args.args
    assert resolved.name == "my-stack"
    assert change_set.change_set_id == "cs-arn"
    services.deployer.deploy.assert_not_called()


def test_deploy_declined_deletes_change_set(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _changed_result()

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev"], input="n\n")

    assert result.exit_code == 0
    services.manager.delete.assert_called_once_with("cs-arn")
    services.deployer.execute_change_set.assert_not_called()


def test_deploy_aborted_prompt_deletes_change_set(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _changed_result()

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev"], input="")

    assert result.exit_code == 1
    services.manager.delete.assert_called_once_with("cs-arn")
    services.deployer.execute_change_set.assert_not_called()


def test_deploy_without_changes_is_success(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _unchanged_result()

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev"])

    assert result.exit_code == 0
    assert "already up to date" in result.output
    services.deployer.execute_change_set.assert_not_called()


def test_deploy_metadata_only_change_is_success(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _changed_result(
        change_set=None, change_set_error=NoChangesError("my-stack")
    )

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev", "-y"])

    assert result.exit_code == 0
    assert "already up to date" in result.output
    services.deployer.execute_change_set.assert_not_called()


def test_deploy_change_set_failure_exits_1(runner, services):
    services.resolver.get_dependency_order.return_value = ["my-stack"]
    services.differ.diff_stack.return_value = _changed_result(
        change_set=None,
        change_set_error=ChangeSetFailedError("my-stack", "Requires capabilities"),
    )

    result = runner.invoke(main, ["deploy", "my-stack", "-c", "dev", "-y"])

    assert result.exit_code == 1
    assert "Requires capabilities" in result.output


def test_deploy_stack_failure_stops_the_run(runner, services):
    services.resolver.get_dependency_order.return_value = ["vpc", "app"]
    services.differ.diff_stack.side_effect = lambda resolved, options: _new_stack_result(
        resolved.name
    )
    services.deployer.deploy.side_effect = StackOperationFailedError("vpc", "ROLLBACK_COMPLETE")

    result = runner.invoke(main, ["deploy", "-c", "dev", "-y"])

    assert result.exit_code == 1
    assert "ROLLBACK_COMPLETE" in result.output
    assert services.deployer.deploy.call_count == 1
    assert [c.args[1] for c in services.resolver.resolve_stack.call_args_list] == ["vpc"]


def test_deploy_resolution_failure(runner, services):
    services.resolver.get_dependency_order.return_value = ["app"]
    services.resolver.resolve_stack.side_effect = StackResolutionError(
        "app", "resolving parameters", KeyError("VpcId")
    )

    result = runner.invoke(main, ["deploy", "app", "-c", "dev"])

    assert result.exit_code == 1
    assert "failed to resolve stack app (resolving parameters)" in result.output


def test_diff_text(runner, services):
    services.differ.diff_stack.return_value = _changed_result()

    result = runner.invoke(main, ["diff", "my-stack", "-c", "dev"])

    assert result.exit_code == 0
    assert "Size: small → large" in result.output
    options = services.differ.diff_stack.call_args.args[1]
    assert options.is_full
    assert not options.keep_change_set


def test_diff_json_redacted(runner, services):
    services.differ.diff_stack.return_value = _changed_result()

    result = runner.invoke(
        main, ["diff", "my-stack", "-c", "dev", "--format", "json", "--redact-values"]
    )

    assert result.exit_code == 0
    assert '"current_value": "[REDACTED]"' in result.output
    assert "small" not in result.output


def test_diff_template_only(runner, services):
    services.differ.diff_stack.return_value = _unchanged_result()

    result = runner.invoke(main, ["diff", "my-stack", "-c", "dev", "--template"])

    assert result.exit_code == 0
    assert "No changes for stack my-stack" in result.output
    options = services.differ.diff_stack.call_args.args[1]
    assert options.template_only
    assert not options.is_full


def test_validate(runner, services):
    services.provider.list_stacks.return_value = ["vpc", "app"]
    services.resolver.render_template.return_value = "Resources: {}\n"
    client = services.factory.for_region.return_value

    result = runner.invoke(main, ["validate", "-c", "dev"])

    assert result.exit_code == 0, result.output
    services.provider.validate.assert_called_once()
    assert client.validate_template.call_count == 2
    assert "Template for stack app is valid" in result.output


def test_describe(runner, services):
    client = services.factory.for_region.return_value
    client.get_stack.return_value = make_stack_info(
        status=StackStatus.CREATE_COMPLETE, outputs={"QueueUrl": "https://sqs/q"}
    )

    result = runner.invoke(main, ["describe", "my-stack", "-c", "dev"])

    assert result.exit_code == 0
    services.factory.for_region.assert_called_with("us-east-1")
    assert "CREATE_COMPLETE" in result.output
    assert "QueueUrl: https://sqs/q" in result.output


def test_describe_missing_stack(runner, services):
    services.factory.for_region.return_value.get_stack.return_value = None

    result = runner.invoke(main, ["describe", "my-stack", "-c", "dev"])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_delete_in_reverse_dependency_order(runner, services):
    services.provider.list_stacks.return_value = ["vpc", "app"]
    services.resolver.get_dependency_order.return_value = ["vpc", "app"]
    services.deployer.delete.return_value = True

    result = runner.invoke(main, ["delete", "-c", "dev", "--yes"])

    assert result.exit_code == 0, result.output
    deleted = [c.args[0] for c in services.deployer.delete.call_args_list]
    assert deleted == ["app", "vpc"]
    assert "Stack vpc deleted" in result.output


def test_delete_only_requested_stacks(runner, services):
    services.resolver.get_dependency_order.return_value = ["vpc", "app"]
    services.deployer.delete.return_value = False

    result = runner.invoke(main, ["delete", "app", "-c", "dev", "--yes"])

    assert result.exit_code == 0
    services.deployer.delete.assert_called_once()
    assert services.deployer.delete.call_args.args[:2] == ("app", "us-east-1")
    assert "Stack app does not exist" in result.output


def test_delete_declined(runner, services):
    services.resolver.get_dependency_order.return_value = ["app"]

    result = runner.invoke(main, ["delete", "app", "-c", "dev"], input="n\n")

    assert result.exit_code == 0
    services.deployer.delete.assert_not_called()
