"""Resolution of declarative parameter specifications into string values."""

import logging

from stackpilot.aws.factory import ClientFactory
from stackpilot.errors import InvalidParameterError, OutputNotFoundError
from stackpilot.models import (
    ListParameter,
    LiteralParameter,
    ParameterSpec,
    StackInfo,
    StackOutputParameter,
)

logger = logging.getLogger(__name__)


class ParameterResolver:
    """Turns ParameterSpec values into the strings CloudFormation expects.

    Stack outputs are read through the client of the region named on the
    reference, or of the caller's default region.
    """

    def __init__(self, client_factory: ClientFactory):
        self._client_factory = client_factory

    def resolve_all(
        self, parameters: dict[str, ParameterSpec], default_region: str | None
    ) -> dict[str, str]:
        """Resolve every parameter of one stack.

        Describe calls are shared across references to the same stack within
        this call, so repeated references see a consistent value.
        """
        stacks: dict[tuple[str | None, str], StackInfo] = {}
        resolved = {}
        for key, spec in parameters.items():
            try:
                resolved[key] = self._resolve(spec, default_region, stacks)
            except InvalidParameterError as err:
                raise InvalidParameterError(f"parameter {key!r}: {err}") from err
        return resolved

    def resolve(self, spec: ParameterSpec, default_region: str | None) -> str:
        return self._resolve(spec, default_region, {})

    def _resolve(self, spec, default_region, stacks) -> str:
        if isinstance(spec, LiteralParameter):
            return spec.value
        if isinstance(spec, StackOutputParameter):
            return self._resolve_output(spec, default_region, stacks)
        if isinstance(spec, ListParameter):
            return self._resolve_list(spec, default_region, stacks)
        raise InvalidParameterError(f"unsupported parameter specification: {spec!r}")

    def _resolve_list(self, spec: ListParameter, default_region, stacks) -> str:
        values = []
        for index, item in enumerate(spec.items):
            if isinstance(item, ListParameter):
                raise InvalidParameterError(f"list item {index} is a nested list")
            value = self._resolve(item, default_region, stacks)
            if value:
                values.append(value)
        return ",".join(values)

    def _resolve_output(self, spec: StackOutputParameter, default_region, stacks) -> str:
        region = spec.region or default_region
        cache_key = (region, spec.stack_name)

        stack = stacks.get(cache_key)
        if stack is None:
            logger.debug("Reading outputs of %s in %s", spec.stack_name, region)
            stack = self._client_factory.for_region(region).get_stack(spec.stack_name)
            if stack is None:
                raise OutputNotFoundError(spec.stack_name, region=spec.region)
            stacks[cache_key] = stack

        if spec.output_key not in stack.outputs:
            raise OutputNotFoundError(spec.stack_name, spec.output_key, region=spec.region)
        return stack.outputs[spec.output_key]
