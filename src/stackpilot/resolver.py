"""Resolution of configured stacks into deployment-ready ResolvedStacks."""

import logging

from stackpilot.aws.factory import ClientFactory
from stackpilot.config import ConfigProvider
from stackpilot.errors import StackResolutionError
from stackpilot.graph import dependency_order
from stackpilot.models import Config, Context, ResolvedStack, StackSpec
from stackpilot.parameters import ParameterResolver
from stackpilot.templates import TemplateProcessor, TemplateReader

logger = logging.getLogger(__name__)


class StackResolver:
    """Turns stack declarations into ResolvedStacks.

    Stack-output parameters read live remote state, so a stack must be
    resolved only after the stacks it depends on have been deployed.
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        client_factory: ClientFactory,
        template_reader: TemplateReader | None = None,
        template_processor: TemplateProcessor | None = None,
    ):
        self._config_provider = config_provider
        self._template_reader = template_reader or TemplateReader()
        self._template_processor = template_processor or TemplateProcessor()
        self._parameter_resolver = ParameterResolver(client_factory)

    def resolve_stack(self, context_name: str, stack_name: str) -> ResolvedStack:
        phase = "loading config"
        try:
            config = self._config_provider.load_config(context_name)
            spec = self._config_provider.get_stack(stack_name, context_name)

            phase = "reading template"
            raw_template = self._template_reader.read(spec.template)

            phase = "processing template"
            template_body = self._process(raw_template, config, spec)

            phase = "resolving parameters"
            parameters = self._parameter_resolver.resolve_all(
                spec.parameters, config.context.region
            )
        except StackResolutionError:
            raise
        except Exception as err:
            raise StackResolutionError(stack_name, phase, err) from err

        logger.debug("Resolved stack %s for context %s", spec.name, context_name)

        return ResolvedStack(
            name=spec.name,
            context=Context(
                name=config.context.name,
                region=config.context.region,
                account=config.context.account,
            ),
            template_body=template_body,
            parameters=parameters,
            tags={**config.tags, **config.context.tags, **spec.tags},
            capabilities=spec.capabilities,
            dependencies=spec.dependencies,
        )

    def render_template(self, context_name: str, stack_name: str) -> str:
        """Read and process a stack's template without resolving its parameters."""
        phase = "loading config"
        try:
            config = self._config_provider.load_config(context_name)
            spec = self._config_provider.get_stack(stack_name, context_name)
            phase = "reading template"
            raw_template = self._template_reader.read(spec.template)
            phase = "processing template"
            return self._process(raw_template, config, spec)
        except Exception as err:
            raise StackResolutionError(stack_name, phase, err) from err

    def _process(self, raw_template: str, config: Config, spec: StackSpec) -> str:
        return self._template_processor.process(
            raw_template,
            {
                "Context": config.context.name,
                "StackName": spec.name,
                "Region": config.context.region,
                "Account": config.context.account,
            },
        )

    def get_dependency_order(self, context_name: str, stack_names: list[str]) -> list[str]:
        """Order the requested stacks and their transitive dependencies.

        Dependencies on stacks missing from the configuration are ignored.
        """
        known = set(self._config_provider.list_stacks(context_name))
        dependencies: dict[str, tuple[str, ...]] = {}
        pending = list(stack_names)

        while pending:
            name = pending.pop()
            if name in dependencies:
                continue
            spec = self._config_provider.get_stack(name, context_name)
            deps = tuple(d for d in spec.dependencies if d in known)
            dependencies[name] = deps
            pending.extend(deps)

        return dependency_order(dependencies)

    def resolve_many(self, context_name: str, stack_names: list[str]) -> list[ResolvedStack]:
        """Resolve stacks one after another in dependency order.

        On failure the StackResolutionError carries the stacks resolved so far.
        """
        resolved: list[ResolvedStack] = []
        for name in self.get_dependency_order(context_name, stack_names):
            try:
                resolved.append(self.resolve_stack(context_name, name))
            except StackResolutionError as err:
                err.resolved = list(resolved)
                raise
        return resolved
