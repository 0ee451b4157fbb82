"""Configuration providers: where stack declarations come from."""

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import yaml

from stackpilot.errors import ConfigurationError, InvalidParameterError
from stackpilot.models import (
    Config,
    ContextConfig,
    ListParameter,
    LiteralParameter,
    ParameterSpec,
    StackOutputParameter,
    StackSpec,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "stackpilot.yaml"


class ConfigProvider(Protocol):
    def load_config(self, context: str) -> Config: ...

    def get_stack(self, stack_name: str, context: str) -> StackSpec: ...

    def list_contexts(self) -> list[str]: ...

    def list_stacks(self, context: str) -> list[str]: ...

    def validate(self) -> None: ...


def parse_parameter(value) -> ParameterSpec:
    """Build a ParameterSpec from its YAML form.

    Scalars are literals, sequences are lists, and mappings select a resolver
    through their ``type`` key.
    """
    if isinstance(value, list):
        items = []
        for index, item in enumerate(value):
            if isinstance(item, list):
                raise InvalidParameterError(f"list item {index} is a nested list")
            items.append(parse_parameter(item))
        return ListParameter(tuple(items))

    if isinstance(value, dict):
        kind = value.get("type")
        if kind == "literal":
            if "value" not in value:
                raise InvalidParameterError("literal parameter is missing 'value'")
            return LiteralParameter(_scalar(value["value"]))
        if kind == "stack-output":
            missing = [k for k in ("stack_name", "output_key") if not value.get(k)]
            if missing:
                raise InvalidParameterError(
                    f"stack-output parameter is missing {', '.join(repr(k) for k in missing)}"
                )
            return StackOutputParameter(
                stack_name=str(value["stack_name"]),
                output_key=str(value["output_key"]),
                region=value.get("region"),
            )
        raise InvalidParameterError(f"unsupported parameter type {kind!r}")

    return LiteralParameter(_scalar(value))


def _scalar(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _parse_parameters(raw: dict | None, stack_name: str) -> dict[str, ParameterSpec]:
    parameters = {}
    for key, value in (raw or {}).items():
        try:
            parameters[key] = parse_parameter(value)
        except InvalidParameterError as err:
            raise InvalidParameterError(f"stack {stack_name!r}, parameter {key!r}: {err}") from err
    return parameters


def _string_map(raw: dict | None) -> dict[str, str]:
    return {str(k): _scalar(v) for k, v in (raw or {}).items()}


class FileConfigProvider:
    """Reads stack configuration from a YAML file.

    The file is read once, on first use. Stack settings can be overridden per
    context under ``stacks[].contexts.<name>``.
    """

    def __init__(self, path: str | Path = DEFAULT_CONFIG_FILE):
        self.path = Path(path)
        self._raw: dict | None = None

    def load_config(self, context: str) -> Config:
        raw = self._load()
        context_config = self._context(context)
        return Config(
            project=raw.get("project", ""),
            region=raw.get("region", ""),
            tags=_string_map(raw.get("tags")),
            context=context_config,
            stacks=[self._resolve_stack(s, context) for s in raw.get("stacks") or []],
        )

    def list_contexts(self) -> list[str]:
        return sorted(self._load().get("contexts") or {})

    def list_stacks(self, context: str) -> list[str]:
        self._context(context)
        return [s["name"] for s in self._load().get("stacks") or []]

    def get_stack(self, stack_name: str, context: str) -> StackSpec:
        for raw_stack in self._load().get("stacks") or []:
            if raw_stack.get("name") == stack_name:
                return self._resolve_stack(raw_stack, context)
        raise ConfigurationError(f"stack {stack_name!r} not found in configuration")

    def validate(self) -> None:
        """Check context references and that template files exist."""
        raw = self._load()
        contexts = raw.get("contexts") or {}

        for raw_stack in raw.get("stacks") or []:
            name = raw_stack.get("name")
            if not name:
                raise ConfigurationError("stack without a name in configuration")
            if not raw_stack.get("template"):
                raise ConfigurationError(f"stack {name!r} has no template")
            for context_name in raw_stack.get("contexts") or {}:
                if context_name not in contexts:
                    raise ConfigurationError(
                        f"stack {name!r} references undefined context {context_name!r}"
                    )

        template_dir = self._template_dir()
        if template_dir is not None and not template_dir.is_dir():
            raise ConfigurationError(f"template directory not found: {template_dir}")

        for raw_stack in raw.get("stacks") or []:
            template = raw_stack["template"]
            if urlparse(template).scheme in ("", "file"):
                path = self._template_path(template.removeprefix("file://"))
                if not path.is_file():
                    raise ConfigurationError(
                        f"template file not found for stack {raw_stack['name']!r}: {path}"
                    )

    def _load(self) -> dict:
        if self._raw is not None:
            return self._raw

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as err:
            raise ConfigurationError(f"failed to read config file {self.path}: {err}") from err
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as err:
            raise ConfigurationError(f"failed to parse config file {self.path}: {err}") from err
        if not isinstance(raw, dict):
            raise ConfigurationError(f"config file {self.path} must contain a mapping")

        logger.debug("Loaded configuration from %s", self.path)
        self._raw = raw
        return raw

    def _context(self, name: str) -> ContextConfig:
        raw = self._load()
        contexts = raw.get("contexts") or {}
        if name not in contexts:
            raise ConfigurationError(f"context {name!r} not found in configuration")

        raw_context = contexts[name] or {}
        return ContextConfig(
            name=name,
            region=raw_context.get("region") or raw.get("region", ""),
            account=_scalar(raw_context.get("account")),
            tags={**_string_map(raw.get("tags")), **_string_map(raw_context.get("tags"))},
        )

    def _resolve_stack(self, raw_stack: dict, context: str) -> StackSpec:
        name = raw_stack.get("name")
        if not name:
            raise ConfigurationError("stack without a name in configuration")
        if not raw_stack.get("template"):
            raise ConfigurationError(f"stack {name!r} has no template")

        parameters = dict(raw_stack.get("parameters") or {})
        tags = _string_map(raw_stack.get("tags"))
        dependencies = raw_stack.get("depends_on") or []
        capabilities = raw_stack.get("capabilities") or []

        override = (raw_stack.get("contexts") or {}).get(context) or {}
        parameters.update(override.get("parameters") or {})
        tags.update(_string_map(override.get("tags")))
        if override.get("depends_on") is not None:
            dependencies = override["depends_on"]
        if override.get("capabilities") is not None:
            capabilities = override["capabilities"]

        return StackSpec(
            name=name,
            template=self._template_uri(raw_stack["template"]),
            parameters=_parse_parameters(parameters, name),
            tags=tags,
            capabilities=tuple(capabilities),
            dependencies=tuple(dependencies),
        )

    def _template_dir(self) -> Path | None:
        directory = (self._load().get("templates") or {}).get("directory")
        if not directory:
            return None
        return self.path.parent / directory

    def _template_path(self, template: str) -> Path:
        path = Path(template)
        if path.is_absolute():
            return path
        return (self._template_dir() or self.path.parent) / path

    def _template_uri(self, template: str) -> str:
        scheme = urlparse(template).scheme
        if scheme and scheme != "file" and len(scheme) > 1:
            return template
        return f"file://{self._template_path(template.removeprefix('file://'))}"
