"""Comparison of deployed and proposed templates, parameters and tags."""

import difflib
import hashlib

from stackpilot.models import (
    ChangeType,
    ParameterDiff,
    ResourceCounts,
    TagDiff,
    TemplateChange,
)
from stackpilot.templates import dump_template, load_template


def _compare_mappings(current: dict[str, str], proposed: dict[str, str], diff_cls) -> list:
    diffs = []
    for key in sorted(set(current) | set(proposed)):
        if key not in current:
            diffs.append(diff_cls(key, "", proposed[key], ChangeType.ADD))
        elif key not in proposed:
            diffs.append(diff_cls(key, current[key], "", ChangeType.REMOVE))
        elif current[key] != proposed[key]:
            diffs.append(diff_cls(key, current[key], proposed[key], ChangeType.MODIFY))
    return diffs


def compare_parameters(current: dict[str, str], proposed: dict[str, str]) -> list[ParameterDiff]:
    """Return parameter differences sorted by key. Unchanged keys are omitted."""
    return _compare_mappings(current, proposed, ParameterDiff)


def compare_tags(current: dict[str, str], proposed: dict[str, str]) -> list[TagDiff]:
    """Return tag differences sorted by key. Unchanged keys are omitted."""
    return _compare_mappings(current, proposed, TagDiff)


def template_hash(template: str) -> str:
    """Short SHA-256 of a template with line endings and outer whitespace normalised."""
    normalised = template.replace("\r\n", "\n").strip()
    return hashlib.sha256(normalised.encode("utf-8")).hexdigest()[:12]


class TemplateComparator:
    """Compares two template bodies structurally.

    Formatting-only differences (whitespace, key order, JSON versus YAML,
    short versus long intrinsic syntax) are not reported as changes.
    """

    def compare(self, current: str, proposed: str) -> TemplateChange:
        current_hash = template_hash(current)
        proposed_hash = template_hash(proposed)

        if current_hash == proposed_hash:
            return TemplateChange(
                has_changes=False, current_hash=current_hash, proposed_hash=proposed_hash
            )

        current_data = load_template(current)
        proposed_data = load_template(proposed)

        if current_data == proposed_data:
            return TemplateChange(
                has_changes=False, current_hash=current_hash, proposed_hash=proposed_hash
            )

        return TemplateChange(
            has_changes=True,
            current_hash=current_hash,
            proposed_hash=proposed_hash,
            diff=self._describe(current_data, proposed_data),
            resource_counts=self._count_resources(current_data, proposed_data),
        )

    def _count_resources(self, current: dict, proposed: dict) -> ResourceCounts:
        current_resources = _resources(current)
        proposed_resources = _resources(proposed)

        added = len(proposed_resources.keys() - current_resources.keys())
        removed = len(current_resources.keys() - proposed_resources.keys())
        modified = sum(
            1
            for name in current_resources.keys() & proposed_resources.keys()
            if current_resources[name] != proposed_resources[name]
        )
        return ResourceCounts(added=added, modified=modified, removed=removed)

    def _describe(self, current: dict, proposed: dict) -> str:
        lines = ["Template sections changed:"]
        lines.extend(_summarise(current, proposed, lambda name, _: name) or ["  (none)"])

        if current.get("Resources") != proposed.get("Resources"):
            lines.append("")
            lines.append("Resource changes:")
            lines.extend(
                _summarise(
                    _resources(current),
                    _resources(proposed),
                    lambda name, resource: f"{name} ({_resource_type(resource)})",
                )
            )

        unified = difflib.unified_diff(
            dump_template(current).splitlines(),
            dump_template(proposed).splitlines(),
            fromfile="deployed",
            tofile="proposed",
            lineterm="",
        )
        lines.append("")
        lines.extend(unified)
        return "\n".join(lines) + "\n"


def _summarise(current: dict, proposed: dict, label) -> list[str]:
    changes = []
    for name in sorted(set(current) | set(proposed)):
        if name not in current:
            changes.append(f"  + {label(name, proposed[name])}")
        elif name not in proposed:
            changes.append(f"  - {label(name, current[name])}")
        elif current[name] != proposed[name]:
            changes.append(f"  ~ {label(name, proposed[name])}")
    return changes


def _resources(template: dict) -> dict:
    resources = template.get("Resources")
    return resources if isinstance(resources, dict) else {}


def _resource_type(resource) -> str:
    if isinstance(resource, dict) and isinstance(resource.get("Type"), str):
        return resource["Type"]
    return "Unknown"
