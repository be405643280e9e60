"""Reconciliation engine contract and a file-backed reference engine.

An engine turns a :class:`StackDefinition` into a list of operations against
previously recorded state (``plan``) and executes them (``apply``). Unchanged
resources produce no operation, so planning the same definition twice against
unchanged state yields an empty list the second time.

:class:`LocalEngine` records state as JSON and drives an injected
:class:`ResourceProvider`, shaped like ``pulumi.dynamic.ResourceProvider``.
Properties declared secret are persisted only as digests.
"""
from __future__ import annotations

import enum
import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping, Protocol

from pydantic.alias_generators import to_camel

from lab_infra import user_data
from lab_infra.errors import ReconciliationError
from lab_infra.graph import Ref, Rendered, ResourceSpec, StackDefinition, dependency_order

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class OpKind(enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass(frozen=True)
class ResourceState:
    name: str
    type: str
    id: str
    inputs: Mapping[str, Any] = field(default_factory=dict)
    outputs: Mapping[str, Any] = field(default_factory=dict)
    dependencies: tuple[str, ...] = ()

    def attribute(self, attribute: str) -> Any:
        if attribute == "id":
            return self.id
        if attribute in self.outputs:
            return self.outputs[attribute]
        return self.outputs.get(to_camel(attribute))


class ResolvedState:
    """Resolved resources keyed by logical name, in the order they were applied."""

    def __init__(self, resources: list[ResourceState] | None = None) -> None:
        self.resources: dict[str, ResourceState] = {r.name: r for r in resources or []}

    def __iter__(self) -> Iterator[ResourceState]:
        return iter(self.resources.values())

    def __len__(self) -> int:
        return len(self.resources)

    def __contains__(self, name: str) -> bool:
        return name in self.resources

    def get(self, name: str) -> ResourceState | None:
        return self.resources.get(name)

    def put(self, resource: ResourceState) -> None:
        self.resources[resource.name] = resource

    def remove(self, name: str) -> None:
        self.resources.pop(name, None)

    def attribute(self, name: str, attribute: str) -> Any:
        resource = self.resources.get(name)
        if resource is None:
            return None
        return resource.attribute(attribute)

    def to_dict(self) -> dict:
        return {
            "version": STATE_VERSION,
            "resources": [
                {
                    "name": r.name,
                    "type": r.type,
                    "id": r.id,
                    "inputs": dict(r.inputs),
                    "outputs": dict(r.outputs),
                    "dependencies": list(r.dependencies),
                }
                for r in self
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResolvedState:
        if data.get("version") != STATE_VERSION:
            raise ValueError(f"Unsupported state version {data.get('version')!r}")
        return cls(
            [
                ResourceState(
                    name=r["name"],
                    type=r["type"],
                    id=r["id"],
                    inputs=r.get("inputs", {}),
                    outputs=r.get("outputs", {}),
                    dependencies=tuple(r.get("dependencies", ())),
                )
                for r in data.get("resources", [])
            ]
        )


@dataclass(frozen=True)
class Operation:
    kind: OpKind
    name: str
    type: str
    spec: ResourceSpec | None = None
    prior: ResourceState | None = None

    def __str__(self) -> str:
        return f"{self.kind.value} {self.type} {self.name}"


class Engine(Protocol):
    def plan(self, definition: StackDefinition) -> list[Operation]: ...

    def apply(self, operations: list[Operation]) -> ResolvedState: ...


@dataclass(frozen=True)
class CreateResult:
    id: str
    outs: dict[str, Any] = field(default_factory=dict)


class ResourceProvider(Protocol):
    def create(self, type_: str, props: dict[str, Any]) -> CreateResult: ...

    def update(self, type_: str, id_: str, olds: dict[str, Any], news: dict[str, Any]) -> dict[str, Any]: ...

    def delete(self, type_: str, id_: str, props: dict[str, Any]) -> None: ...


def _symbolic(value: Any) -> Any:
    if isinstance(value, Ref):
        return {"$ref": value.resource, "attribute": value.attribute}
    if isinstance(value, Rendered):
        template = user_data.TEMPLATES[value.template]
        return {"$render": template.name, "version": template.version, "slots": _symbolic(value.slots)}
    if isinstance(value, Mapping):
        return {key: _symbolic(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_symbolic(item) for item in value]
    return value


def _digest(value: Any) -> str:
    return hashlib.sha256(json.dumps(value, sort_keys=True).encode()).hexdigest()


def declared_inputs(spec: ResourceSpec) -> dict[str, Any]:
    """Inputs as recorded in state: refs unresolved, secret properties digested."""
    inputs = {}
    for prop, value in spec.properties.items():
        symbolic = _symbolic(value)
        if prop in spec.secret_properties:
            symbolic = {"$secret": _digest(symbolic)}
        inputs[prop] = symbolic
    return inputs


def resolve(value: Any, state: ResolvedState) -> Any:
    if isinstance(value, Ref):
        resolved = state.attribute(value.resource, value.attribute)
        if resolved is None:
            raise LookupError(f"{value.resource}.{value.attribute} is not resolved")
        return resolved
    if isinstance(value, Rendered):
        slots = resolve(value.slots, state)
        return user_data.render(user_data.TEMPLATES[value.template], slots)
    if isinstance(value, Mapping):
        return {key: resolve(item, state) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve(item, state) for item in value]
    return value


class LocalEngine:
    def __init__(self, state_path: Path, provider: ResourceProvider) -> None:
        self.state_path = Path(state_path)
        self.provider = provider

    def load_state(self) -> ResolvedState:
        if not self.state_path.exists():
            return ResolvedState()
        return ResolvedState.from_dict(json.loads(self.state_path.read_text()))

    def save_state(self, state: ResolvedState) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.state_path.with_suffix(self.state_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2, sort_keys=True))
        os.replace(tmp_path, self.state_path)

    def plan(self, definition: StackDefinition) -> list[Operation]:
        state = self.load_state()
        planned: dict[str, OpKind] = {}
        operations = []

        for spec in definition.order():
            prior = state.get(spec.name)
            if prior is None:
                kind = OpKind.CREATE
            elif prior.type != spec.type:
                kind = OpKind.REPLACE
            elif dict(prior.inputs) != declared_inputs(spec):
                kind = OpKind.UPDATE
            elif any(planned.get(dep) is OpKind.REPLACE for dep in spec.dependencies()):
                # A replaced producer hands out a new identifier
                kind = OpKind.UPDATE
            else:
                continue
            planned[spec.name] = kind
            operations.append(Operation(kind, spec.name, spec.type, spec=spec, prior=prior))

        removed = {prior.name: prior for prior in state if prior.name not in definition.resources}
        # consumers go before the producers they were recorded against
        for name in reversed(dependency_order({name: prior.dependencies for name, prior in removed.items()})):
            prior = removed[name]
            operations.append(Operation(OpKind.DELETE, prior.name, prior.type, prior=prior))

        logger.info("Planned %d operations", len(operations))
        for operation in operations:
            logger.debug("  %s", operation)
        return operations

    def apply(self, operations: list[Operation]) -> ResolvedState:
        state = self.load_state()
        for operation in operations:
            logger.info("Applying %s", operation)
            try:
                self._apply_operation(operation, state)
            except Exception as e:
                logger.error("Failed to %s %s: %s", operation.kind.value, operation.name, e)
                raise ReconciliationError(operation.name, e, state) from e
            finally:
                self.save_state(state)
        return state

    def _apply_operation(self, operation: Operation, state: ResolvedState) -> None:
        if operation.kind in (OpKind.DELETE, OpKind.REPLACE):
            prior = operation.prior
            self.provider.delete(prior.type, prior.id, dict(prior.outputs))
            state.remove(prior.name)
            if operation.kind is OpKind.DELETE:
                return

        spec = operation.spec
        props = resolve(spec.properties, state)
        if operation.kind is OpKind.UPDATE:
            prior = state.get(spec.name)
            outs = self.provider.update(spec.type, prior.id, dict(prior.outputs), props)
            resource_id = prior.id
        else:
            result = self.provider.create(spec.type, props)
            outs, resource_id = result.outs, result.id

        resolved = ResourceState(
            name=spec.name,
            type=spec.type,
            id=resource_id,
            inputs=declared_inputs(spec),
            outputs=_public_outputs(outs, spec),
            dependencies=tuple(spec.dependencies()),
        )
        state.put(resolved)


def _public_outputs(outs: Mapping[str, Any], spec: ResourceSpec) -> dict[str, Any]:
    hidden = set(spec.secret_properties) | {to_camel(prop) for prop in spec.secret_properties}
    return {key: value for key, value in outs.items() if key not in hidden}
