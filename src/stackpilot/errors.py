"""Exception hierarchy for stack resolution, diffing and deployment."""


class StackpilotError(Exception):
    """Base class for all stackpilot errors."""


class ConfigurationError(StackpilotError):
    """Missing stack or context, unreadable config or invalid template path."""


class InvalidParameterError(ConfigurationError):
    """A parameter specification that cannot be resolved as declared."""


class TemplateError(ConfigurationError):
    """A template that cannot be read, rendered or parsed."""


class CircularDependencyError(StackpilotError):
    """The declared stack dependencies contain a cycle."""

    def __init__(self, stacks: list[str]):
        self.stacks = stacks
        super().__init__(f"circular dependency detected between stacks: {', '.join(stacks)}")


class StackResolutionError(StackpilotError):
    """Resolving a stack failed at a given phase.

    ``resolved`` holds the stacks of the same batch that were resolved before
    the failure.
    """

    def __init__(self, stack_name: str, phase: str, cause: Exception, resolved=None):
        self.stack_name = stack_name
        self.phase = phase
        self.cause = cause
        self.resolved = list(resolved or [])
        super().__init__(f"failed to resolve stack {stack_name} ({phase}): {cause}")


class OutputNotFoundError(StackpilotError):
    """A referenced stack or stack output does not exist."""

    def __init__(self, stack_name: str, output_key: str | None = None, region: str | None = None):
        self.stack_name = stack_name
        self.output_key = output_key
        self.region = region
        where = f" in {region}" if region else ""
        if output_key is None:
            message = f"stack {stack_name!r} does not exist{where}"
        else:
            message = f"stack {stack_name!r}{where} does not have output {output_key!r}"
        super().__init__(message)


class NoChangesError(StackpilotError):
    """The update or changeset would not change anything.

    This is a successful no-op; callers report it instead of failing.
    """

    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(f"stack {stack_name} is already up to date - no changes to deploy")


class ChangeSetFailedError(StackpilotError):
    """A changeset could not be created."""

    def __init__(self, stack_name: str, reason: str):
        self.stack_name = stack_name
        self.reason = reason
        super().__init__(f"changeset for stack {stack_name} failed: {reason}")


class ChangeSetTimeoutError(ChangeSetFailedError):
    """A changeset did not finish creating within the allowed time."""

    def __init__(self, stack_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(stack_name, f"timed out after {timeout:g}s waiting for changeset")


class StackOperationFailedError(StackpilotError):
    """A stack operation ended in a failure or rollback status."""

    def __init__(self, stack_name: str, status: str):
        self.stack_name = stack_name
        self.status = status
        super().__init__(f"stack {stack_name} operation failed with status: {status}")


class OperationCancelledError(StackpilotError):
    """The caller cancelled a polling operation."""

    def __init__(self, stack_name: str, operation: str):
        self.stack_name = stack_name
        self.operation = operation
        super().__init__(f"{operation} of stack {stack_name} was cancelled")
