import logging
from typing import Iterable

from lab_infra.engine import ResolvedState
from lab_infra.errors import UnresolvedOutputError
from lab_infra.graph import OutputBinding

logger = logging.getLogger(__name__)


def export_outputs(bindings: Iterable[OutputBinding], state: ResolvedState) -> dict[str, str]:
    outputs = {}
    for binding in bindings:
        value = state.attribute(binding.resource, binding.attribute)
        if value is None or value == "":
            raise UnresolvedOutputError(binding.name, binding.resource, binding.attribute)
        outputs[binding.name] = str(value)
        logger.info("Output %s = %s", binding.name, value)
    return outputs
