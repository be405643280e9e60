"""Declarative resource graph.

Resources are declared on a :class:`StackBuilder` by logical name. Properties
may hold :class:`Ref` values pointing at another resource's resolved attribute
and :class:`Rendered` values produced from a boot template once their refs
resolve. :meth:`StackBuilder.build` validates the graph and returns an
immutable :class:`StackDefinition`; nothing here talks to a provider.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from lab_infra.errors import (
    DanglingReferenceError,
    DependencyCycleError,
    DuplicateOutputError,
    DuplicateResourceError,
    MissingPropertyError,
    SecretLeakError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ref:
    resource: str
    attribute: str = "id"


@dataclass(frozen=True)
class Rendered:
    template: str
    slots: Mapping[str, Any]


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    type: str
    properties: Mapping[str, Any]
    depends_on: tuple[str, ...] = ()
    secret_properties: frozenset[str] = frozenset()
    required: tuple[str, ...] = ()

    def ref(self, attribute: str = "id") -> Ref:
        return Ref(self.name, attribute)

    def references(self) -> list[Ref]:
        return list(iter_refs(self.properties))

    def dependencies(self) -> list[str]:
        names = [ref.resource for ref in self.references()] + list(self.depends_on)
        return list(dict.fromkeys(names))


@dataclass(frozen=True)
class OutputBinding:
    name: str
    resource: str
    attribute: str = "id"


@dataclass(frozen=True)
class StackDefinition:
    resources: Mapping[str, ResourceSpec]
    outputs: tuple[OutputBinding, ...] = ()

    def __iter__(self) -> Iterator[ResourceSpec]:
        return iter(self.resources.values())

    def __len__(self) -> int:
        return len(self.resources)

    def __getitem__(self, name: str) -> ResourceSpec:
        return self.resources[name]

    def order(self) -> list[ResourceSpec]:
        """Resources ordered so that every producer precedes its consumers.

        Ties keep declaration order.
        """
        return [self.resources[name] for name in topological_order(self.resources.values())]


def iter_refs(value: Any) -> Iterator[Ref]:
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, Rendered):
        yield from iter_refs(value.slots)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Rendered):
        yield from iter_strings(value.slots)
    elif isinstance(value, Mapping):
        for key, item in value.items():
            yield from iter_strings(key)
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


def dependency_order(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Kahn's sort over ``name -> dependencies``; ties keep the mapping's order.

    Dependencies on names outside the mapping are ignored.
    """
    position = {name: i for i, name in enumerate(dependencies)}
    remaining = {name: set(deps) & position.keys() for name, deps in dependencies.items()}
    ordered: list[str] = []
    while remaining:
        ready = sorted((name for name, deps in remaining.items() if not deps), key=position.__getitem__)
        if not ready:
            raise DependencyCycleError(f"Dependency cycle between {sorted(remaining)}")
        name = ready[0]
        ordered.append(name)
        del remaining[name]
        for deps in remaining.values():
            deps.discard(name)
    return ordered


def topological_order(specs: Iterable[ResourceSpec]) -> list[str]:
    return dependency_order({spec.name: spec.dependencies() for spec in specs})


class StackBuilder:
    def __init__(self, tags: Mapping[str, str] | None = None) -> None:
        self._tags = dict(tags or {})
        self._resources: dict[str, ResourceSpec] = {}
        self._outputs: dict[str, OutputBinding] = {}

    def add(
        self,
        name: str,
        type_: str,
        properties: Mapping[str, Any] | None = None,
        *,
        depends_on: Iterable[ResourceSpec | str] = (),
        secret_properties: Iterable[str] = (),
        required: Iterable[str] = (),
        tagged: bool = True,
    ) -> ResourceSpec:
        if name in self._resources:
            raise DuplicateResourceError(f"Resource {name!r} declared twice")

        properties = dict(properties or {})
        if tagged:
            properties["tags"] = {**self._tags, "Name": name, **properties.get("tags", {})}

        spec = ResourceSpec(
            name=name,
            type=type_,
            properties=MappingProxyType(properties),
            depends_on=tuple(d.name if isinstance(d, ResourceSpec) else d for d in depends_on),
            secret_properties=frozenset(secret_properties),
            required=tuple(required),
        )
        self._resources[name] = spec
        return spec

    def export(self, name: str, resource: ResourceSpec | str, attribute: str = "id") -> OutputBinding:
        if name in self._outputs:
            raise DuplicateOutputError(f"Output {name!r} exported twice")
        resource_name = resource.name if isinstance(resource, ResourceSpec) else resource
        binding = OutputBinding(name=name, resource=resource_name, attribute=attribute)
        self._outputs[name] = binding
        return binding

    def build(self, secrets: Iterable[str] = ()) -> StackDefinition:
        secrets = [secret for secret in secrets if secret]
        for spec in self._resources.values():
            self._validate(spec, secrets)
        for binding in self._outputs.values():
            if binding.resource not in self._resources:
                raise DanglingReferenceError(f"output {binding.name}", binding.resource)

        definition = StackDefinition(
            resources=MappingProxyType(dict(self._resources)),
            outputs=tuple(self._outputs.values()),
        )
        definition.order()
        logger.debug("Built stack definition with %d resources", len(definition))
        return definition

    def _validate(self, spec: ResourceSpec, secrets: list[str]) -> None:
        for prop in spec.required:
            if spec.properties.get(prop) is None:
                raise MissingPropertyError(spec.name, prop)
        for target in spec.dependencies():
            if target not in self._resources:
                raise DanglingReferenceError(spec.name, target)
        for prop, value in spec.properties.items():
            if prop in spec.secret_properties:
                continue
            if any(secret in text for text in iter_strings(value) for secret in secrets):
                raise SecretLeakError(spec.name, prop)
