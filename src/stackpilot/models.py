"""Core data models for stack resolution, diffing and deployment."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from stackpilot.errors import InvalidParameterError


class StackStatus(StrEnum):
    """CloudFormation stack status."""

    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    CREATE_FAILED = "CREATE_FAILED"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    DELETE_FAILED = "DELETE_FAILED"
    UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
    UPDATE_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    UPDATE_FAILED = "UPDATE_FAILED"
    UPDATE_ROLLBACK_IN_PROGRESS = "UPDATE_ROLLBACK_IN_PROGRESS"
    UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
    UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    IMPORT_ROLLBACK_IN_PROGRESS = "IMPORT_ROLLBACK_IN_PROGRESS"
    IMPORT_ROLLBACK_COMPLETE = "IMPORT_ROLLBACK_COMPLETE"
    IMPORT_ROLLBACK_FAILED = "IMPORT_ROLLBACK_FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def is_successful(self) -> bool:
        return self in _SUCCESS_STATUSES


_SUCCESS_STATUSES = frozenset(
    {
        StackStatus.CREATE_COMPLETE,
        StackStatus.UPDATE_COMPLETE,
        StackStatus.DELETE_COMPLETE,
        StackStatus.IMPORT_COMPLETE,
    }
)

_TERMINAL_STATUSES = _SUCCESS_STATUSES | frozenset(
    {
        StackStatus.CREATE_FAILED,
        StackStatus.UPDATE_FAILED,
        StackStatus.UPDATE_ROLLBACK_COMPLETE,
        StackStatus.UPDATE_ROLLBACK_FAILED,
        StackStatus.DELETE_FAILED,
        StackStatus.ROLLBACK_COMPLETE,
        StackStatus.ROLLBACK_FAILED,
        StackStatus.IMPORT_ROLLBACK_COMPLETE,
        StackStatus.IMPORT_ROLLBACK_FAILED,
    }
)


class ChangeSetStatus(StrEnum):
    """CloudFormation changeset status."""

    CREATE_PENDING = "CREATE_PENDING"
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    DELETE_PENDING = "DELETE_PENDING"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    DELETE_FAILED = "DELETE_FAILED"
    FAILED = "FAILED"


class ChangeSetType(StrEnum):
    """Whether a changeset creates a new stack or updates an existing one."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"


class ChangeType(StrEnum):
    """Kind of difference between deployed and proposed values."""

    ADD = "ADD"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


@dataclass(frozen=True)
class Context:
    """The account/region/environment a stack is resolved for."""

    name: str
    region: str
    account: str = ""


@dataclass(frozen=True)
class LiteralParameter:
    """A parameter value given verbatim."""

    value: str


@dataclass(frozen=True)
class StackOutputParameter:
    """A parameter value read from another stack's outputs.

    ``region`` selects a region other than the resolving stack's own.
    """

    stack_name: str
    output_key: str
    region: str | None = None


@dataclass(frozen=True)
class ListParameter:
    """An ordered list of literal or stack-output values, joined with commas."""

    items: tuple[LiteralParameter | StackOutputParameter, ...]

    def __post_init__(self):
        for index, item in enumerate(self.items):
            if isinstance(item, ListParameter):
                raise InvalidParameterError(f"list item {index} is a nested list")


ParameterSpec = LiteralParameter | StackOutputParameter | ListParameter


@dataclass(frozen=True)
class StackSpec:
    """Declared configuration for one stack within one context."""

    name: str
    template: str
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    capabilities: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContextConfig:
    """A context as declared in configuration, with global defaults applied."""

    name: str
    region: str
    account: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Config:
    """Configuration resolved for a single context."""

    project: str
    region: str
    tags: dict[str, str]
    context: ContextConfig
    stacks: list[StackSpec]


@dataclass(frozen=True)
class ResolvedStack:
    """A stack with its template rendered and parameters resolved."""

    name: str
    context: Context
    template_body: str
    parameters: dict[str, str]
    tags: dict[str, str]
    capabilities: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class StackInfo:
    """Deployed state of a CloudFormation stack."""

    stack_id: str
    name: str
    status: StackStatus
    description: str = ""
    parameters: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class StackEvent:
    """A single CloudFormation stack event."""

    event_id: str
    stack_name: str
    logical_id: str
    physical_id: str
    resource_type: str
    timestamp: datetime
    status: str
    reason: str | None = None


@dataclass(frozen=True)
class ParameterDiff:
    """A difference in one stack parameter."""

    key: str
    current_value: str
    proposed_value: str
    change_type: ChangeType


@dataclass(frozen=True)
class TagDiff:
    """A difference in one stack tag."""

    key: str
    current_value: str
    proposed_value: str
    change_type: ChangeType


@dataclass(frozen=True)
class ResourceCounts:
    added: int = 0
    modified: int = 0
    removed: int = 0


@dataclass(frozen=True)
class TemplateChange:
    """Differences between the deployed and proposed templates."""

    has_changes: bool
    current_hash: str
    proposed_hash: str
    diff: str = ""
    resource_counts: ResourceCounts = field(default_factory=ResourceCounts)


@dataclass(frozen=True)
class ResourceChange:
    """One resource action reported by a changeset."""

    action: str
    resource_type: str
    logical_id: str
    physical_id: str = ""
    replacement: str = ""
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChangeSetInfo:
    """A described changeset."""

    change_set_id: str
    status: str
    changes: list[ResourceChange] = field(default_factory=list)
    stack_name: str = ""


@dataclass(frozen=True)
class DiffOptions:
    """Which dimensions to compare and what to do with the changeset.

    When none of the ``*_only`` flags is set everything is compared; otherwise
    every flagged dimension is.
    """

    template_only: bool = False
    parameters_only: bool = False
    tags_only: bool = False
    keep_change_set: bool = False

    @property
    def is_full(self) -> bool:
        return not (self.template_only or self.parameters_only or self.tags_only)

    @property
    def compare_template(self) -> bool:
        return self.is_full or self.template_only

    @property
    def compare_parameters(self) -> bool:
        return self.is_full or self.parameters_only

    @property
    def compare_tags(self) -> bool:
        return self.is_full or self.tags_only


@dataclass(frozen=True)
class DiffResult:
    """Comparison of a resolved stack against its deployed state."""

    stack_name: str
    context: str
    stack_exists: bool
    template_change: TemplateChange | None = None
    parameter_diffs: list[ParameterDiff] = field(default_factory=list)
    tag_diffs: list[TagDiff] = field(default_factory=list)
    change_set: ChangeSetInfo | None = None
    change_set_error: Exception | None = None
    options: DiffOptions = field(default_factory=DiffOptions)

    def has_changes(self) -> bool:
        if not self.stack_exists:
            return True
        if self.template_change is not None and self.template_change.has_changes:
            return True
        return bool(self.parameter_diffs or self.tag_diffs)
