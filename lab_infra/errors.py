from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lab_infra.engine import ResolvedState


class InfraError(Exception):
    """Base class for every error raised by the lab infrastructure program."""


class KeyMaterialError(InfraError):
    pass


class MissingKeyFileError(KeyMaterialError):
    def __init__(self, path) -> None:
        super().__init__(f"Key file not found: {path}")
        self.path = path


class UnreadableKeyFileError(KeyMaterialError):
    def __init__(self, path, reason: str) -> None:
        super().__init__(f"Key file {path} could not be read: {reason}")
        self.path = path


class MalformedKeyError(KeyMaterialError):
    pass


class GraphValidationError(InfraError):
    pass


class DuplicateResourceError(GraphValidationError):
    pass


class DuplicateOutputError(GraphValidationError):
    pass


class DanglingReferenceError(GraphValidationError):
    def __init__(self, resource: str, target: str) -> None:
        super().__init__(f"Resource {resource!r} references undeclared resource {target!r}")
        self.resource = resource
        self.target = target


class MissingPropertyError(GraphValidationError):
    def __init__(self, resource: str, prop: str) -> None:
        super().__init__(f"Resource {resource!r} is missing required property {prop!r}")
        self.resource = resource
        self.prop = prop


class DependencyCycleError(GraphValidationError):
    pass


class SecretLeakError(GraphValidationError):
    def __init__(self, resource: str, prop: str) -> None:
        super().__init__(f"Key material found in non-secret property {prop!r} of resource {resource!r}")
        self.resource = resource
        self.prop = prop


class TemplateSlotError(InfraError):
    pass


class ImageLookupError(InfraError):
    pass


class NoMatchingImageError(ImageLookupError):
    pass


class AmbiguousImageError(ImageLookupError):
    pass


class ReconciliationError(InfraError):
    """An operation failed inside the reconciliation engine.

    ``state`` holds whatever was applied before the failure; nothing is rolled back.
    """

    def __init__(self, resource: str, cause: object, state: ResolvedState | None = None) -> None:
        super().__init__(f"Reconciliation failed on {resource!r}: {cause}")
        self.resource = resource
        self.cause = cause
        self.state = state


class UnresolvedOutputError(InfraError):
    def __init__(self, output: str, resource: str, attribute: str) -> None:
        super().__init__(f"Output {output!r} cannot be bound: {resource}.{attribute} was never resolved")
        self.output = output
        self.resource = resource
        self.attribute = attribute
