"""Pulumi Automation API engine.

``plan`` runs ``pulumi preview`` and collects the per-resource steps from the
engine event stream; ``apply`` runs ``pulumi up`` and reads the resolved
resources from the exported deployment. State lives in whatever backend the
workspace is configured with.
"""
import logging
from typing import Any, Callable, Iterable, Mapping

from pulumi import automation as auto

from lab_infra.engine import OpKind, Operation, ResolvedState, ResourceState
from lab_infra.errors import ReconciliationError
from lab_infra.graph import StackDefinition
from lab_infra.pulumi_program import render_stack

logger = logging.getLogger(__name__)

STEP_KINDS = {
    "create": OpKind.CREATE,
    "update": OpKind.UPDATE,
    "replace": OpKind.REPLACE,
    "create-replacement": OpKind.REPLACE,
    "delete-replaced": OpKind.REPLACE,
    "discard-replaced": OpKind.REPLACE,
    "delete": OpKind.DELETE,
}


def _is_internal(resource_type: str) -> bool:
    return resource_type == "pulumi:pulumi:Stack" or resource_type.startswith("pulumi:providers:")


def _logical_name(urn: str) -> str:
    return urn.rsplit("::", 1)[-1]


def _op_name(op: Any) -> str:
    return str(getattr(op, "value", op))


def operations_from_events(events: Iterable[Any], definition: StackDefinition | None = None) -> list[Operation]:
    """Collapse preview events into one operation per changed resource."""
    operations: dict[str, Operation] = {}
    for event in events:
        pre_event = getattr(event, "resource_pre_event", None)
        if pre_event is None:
            continue
        metadata = pre_event.metadata
        kind = STEP_KINDS.get(_op_name(metadata.op))
        if kind is None or _is_internal(metadata.type):
            continue
        name = _logical_name(metadata.urn)
        if name in operations:
            continue
        spec = definition.resources.get(name) if definition is not None else None
        operations[name] = Operation(kind, name, metadata.type, spec=spec)
    return list(operations.values())


def state_from_deployment(deployment: Mapping[str, Any]) -> ResolvedState:
    resources = []
    for resource in deployment.get("resources", []):
        if _is_internal(resource["type"]) or "id" not in resource:
            continue
        resources.append(
            ResourceState(
                name=_logical_name(resource["urn"]),
                type=resource["type"],
                id=resource["id"],
                inputs=resource.get("inputs", {}),
                outputs=resource.get("outputs", {}),
                dependencies=tuple(_logical_name(urn) for urn in resource.get("dependencies", [])),
            )
        )
    return ResolvedState(resources)


def failed_resource(events: Iterable[Any]) -> str | None:
    for event in events:
        failed = getattr(event, "res_op_failed_event", None)
        if failed is not None:
            return _logical_name(failed.metadata.urn)
        diagnostic = getattr(event, "diagnostic_event", None)
        if diagnostic is not None and diagnostic.severity == "error" and diagnostic.urn:
            return _logical_name(diagnostic.urn)
    return None


def _log_output(line: str) -> None:
    logger.info("%s", line.rstrip())


class PulumiEngine:
    def __init__(
        self,
        project_name: str,
        stack_name: str,
        *,
        config: Mapping[str, str] | None = None,
        env_vars: Mapping[str, str] | None = None,
        on_output: Callable[[str], None] = _log_output,
    ) -> None:
        self.project_name = project_name
        self.stack_name = stack_name
        self.config = dict(config or {})
        self.env_vars = dict(env_vars or {})
        self.on_output = on_output
        self._definition: StackDefinition | None = None

    def _stack(self, definition: StackDefinition) -> auto.Stack:
        stack = auto.create_or_select_stack(
            stack_name=self.stack_name,
            project_name=self.project_name,
            program=lambda: render_stack(definition),
            opts=auto.LocalWorkspaceOptions(env_vars=self.env_vars),
        )
        if self.config:
            stack.set_all_config({key: auto.ConfigValue(value=value) for key, value in self.config.items()})
        return stack

    def plan(self, definition: StackDefinition) -> list[Operation]:
        self._definition = definition
        events: list = []
        self._stack(definition).preview(on_output=self.on_output, on_event=events.append)
        operations = operations_from_events(events, definition)
        logger.info("Preview reports %d operations", len(operations))
        return operations

    def apply(self, operations: list[Operation]) -> ResolvedState:
        if self._definition is None:
            raise RuntimeError("apply() called before plan()")
        stack = self._stack(self._definition)
        if not operations:
            logger.info("Nothing to apply")
            return state_from_deployment(stack.export_stack().deployment or {})

        events: list = []
        try:
            stack.up(on_output=self.on_output, on_event=events.append)
        except auto.CommandError as e:
            state = state_from_deployment(stack.export_stack().deployment or {})
            raise ReconciliationError(failed_resource(events) or self.stack_name, e, state) from e
        return state_from_deployment(stack.export_stack().deployment or {})
