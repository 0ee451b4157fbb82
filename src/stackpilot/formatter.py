"""Output formatters for diff results, stack events and stack state."""

import io
import json

from rich.console import Console
from rich.markup import escape
from rich.text import Text
from rich.tree import Tree

from stackpilot.errors import NoChangesError
from stackpilot.models import ChangeType, DiffResult, StackEvent, StackInfo

CHANGE_STYLES = {
    ChangeType.ADD: ("+", "green"),
    ChangeType.MODIFY: ("~", "yellow"),
    ChangeType.REMOVE: ("-", "red"),
}

ACTION_STYLES = {
    "Add": "green",
    "Modify": "yellow",
    "Remove": "red",
    "Import": "cyan",
    "Dynamic": "magenta",
}

REDACTED = "[REDACTED]"


def _render(renderable) -> str:
    console = Console(record=True, width=120, file=io.StringIO())
    console.print(renderable)
    return console.export_text()


def format_json(result: DiffResult, *, redact: bool = False) -> str:
    """Format a diff result as JSON."""

    def param_value(value: str) -> str:
        return REDACTED if redact and value else value

    template = None
    if result.template_change is not None:
        tc = result.template_change
        template = {
            "has_changes": tc.has_changes,
            "current_hash": tc.current_hash,
            "proposed_hash": tc.proposed_hash,
            "diff": tc.diff,
            "resource_counts": {
                "added": tc.resource_counts.added,
                "modified": tc.resource_counts.modified,
                "removed": tc.resource_counts.removed,
            },
        }

    change_set = None
    if result.change_set is not None:
        change_set = {
            "change_set_id": result.change_set.change_set_id,
            "status": result.change_set.status,
            "changes": [
                {
                    "action": rc.action,
                    "resource_type": rc.resource_type,
                    "logical_id": rc.logical_id,
                    "physical_id": rc.physical_id,
                    "replacement": rc.replacement,
                    "details": rc.details,
                }
                for rc in result.change_set.changes
            ],
        }

    return json.dumps(
        {
            "stack_name": result.stack_name,
            "context": result.context,
            "stack_exists": result.stack_exists,
            "has_changes": result.has_changes(),
            "template": template,
            "parameters": [
                {
                    "key": d.key,
                    "current_value": param_value(d.current_value),
                    "proposed_value": param_value(d.proposed_value),
                    "change_type": d.change_type.value,
                }
                for d in result.parameter_diffs
            ],
            "tags": [
                {
                    "key": d.key,
                    "current_value": d.current_value,
                    "proposed_value": d.proposed_value,
                    "change_type": d.change_type.value,
                }
                for d in result.tag_diffs
            ],
            "change_set": change_set,
            "change_set_error": (
                str(result.change_set_error) if result.change_set_error is not None else None
            ),
        },
        indent=2,
    )


def _value_line(diff, redact: bool) -> Text:
    symbol, style = CHANGE_STYLES[diff.change_type]
    current = REDACTED if redact and diff.current_value else diff.current_value
    proposed = REDACTED if redact and diff.proposed_value else diff.proposed_value
    key = escape(diff.key)

    if diff.change_type == ChangeType.ADD:
        body = f"{key}: {escape(proposed)}"
    elif diff.change_type == ChangeType.REMOVE:
        body = f"{key}: {escape(current)}"
    else:
        body = f"{key}: {escape(current)} → {escape(proposed)}"
    return Text.from_markup(f"[{style}]{symbol} {body}[/{style}]")


def format_text(result: DiffResult, *, redact: bool = False) -> str:
    """Format a diff result as a Rich tree, returned as a string."""
    if result.stack_exists and not result.has_changes():
        return f"No changes for stack {result.stack_name} in context {result.context}\n"

    title = "new stack" if not result.stack_exists else "changes"
    tree = Tree(
        Text.from_markup(
            f"[bold]{escape(result.stack_name)}[/bold] ({escape(result.context)}) - {title}"
        )
    )

    tc = result.template_change
    if tc is not None and tc.has_changes:
        counts = tc.resource_counts
        label = "Template"
        if result.stack_exists:
            label += (
                f" ({tc.current_hash} → {tc.proposed_hash}; "
                f"+{counts.added} ~{counts.modified} -{counts.removed} resources)"
            )
        branch = tree.add(Text(label, style="bold"))
        for line in tc.diff.rstrip("\n").splitlines():
            branch.add(Text(line))

    if result.parameter_diffs:
        branch = tree.add(Text("Parameters", style="bold"))
        for d in result.parameter_diffs:
            branch.add(_value_line(d, redact))

    if result.tag_diffs:
        branch = tree.add(Text("Tags", style="bold"))
        for d in result.tag_diffs:
            branch.add(_value_line(d, False))

    if result.change_set is not None:
        branch = tree.add(Text("Resource changes", style="bold"))
        if not result.change_set.changes:
            branch.add(Text("(none)", style="dim"))
        for rc in result.change_set.changes:
            style = ACTION_STYLES.get(rc.action, "white")
            label = (
                f"[{style}]{escape(rc.action)}[/{style}] {escape(rc.logical_id)} "
                f"({escape(rc.resource_type)})"
            )
            if rc.replacement in ("True", "Conditional"):
                label += f" [bold red]replacement: {rc.replacement}[/bold red]"
            resource_branch = branch.add(Text.from_markup(label))
            for detail in rc.details:
                resource_branch.add(Text(detail, style="dim"))
    elif isinstance(result.change_set_error, NoChangesError):
        tree.add(Text("No resource changes (metadata-only changes)", style="dim"))
    elif result.change_set_error is not None:
        tree.add(Text(f"Changeset unavailable: {result.change_set_error}", style="yellow"))

    return _render(tree)


def format_event(event: StackEvent) -> str:
    """Format a stack event as a single line."""
    line = (
        f"[{event.timestamp:%Y-%m-%d %H:%M:%S}] {event.status:<30} "
        f"{event.resource_type:<40} {event.logical_id}"
    )
    if event.reason:
        line += f" {event.reason}"
    return line


def format_stack_info(info: StackInfo) -> str:
    """Format the deployed state of a stack as a Rich tree."""
    tree = Tree(Text.from_markup(f"[bold]{escape(info.name)}[/bold] - {info.status.value}"))
    if info.description:
        tree.add(Text(info.description, style="dim"))
    if info.created_at is not None:
        tree.add(Text(f"Created: {info.created_at:%Y-%m-%d %H:%M:%S}"))
    if info.updated_at is not None:
        tree.add(Text(f"Updated: {info.updated_at:%Y-%m-%d %H:%M:%S}"))

    for title, values in (
        ("Parameters", info.parameters),
        ("Outputs", info.outputs),
        ("Tags", info.tags),
    ):
        if values:
            branch = tree.add(Text(title, style="bold"))
            for key, value in sorted(values.items()):
                branch.add(Text(f"{key}: {value}"))

    return _render(tree)
