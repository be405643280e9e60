"""Boot script rendering.

Templates are versioned files under ``templates/`` named
``<name>.v<version>.sh.j2``. Each template declares its slots up front; a
render call must supply exactly those slots.
"""
from dataclasses import dataclass
from functools import cache
from pathlib import Path
from typing import Mapping

import jinja2
from jinja2 import meta

from lab_infra.errors import TemplateSlotError
from lab_infra.key_material import KeyMaterial

TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class BootTemplate:
    name: str
    version: int
    slots: tuple[str, ...]

    @property
    def filename(self) -> str:
        return f"{self.name}.v{self.version}.sh.j2"


IMPORT_KEY_MATERIAL = BootTemplate("import_key_material", 1, ("region", "key_alias"))
USER_DATA = BootTemplate("user_data", 1, ("public_key", "private_key", "import_script", "key_id"))

TEMPLATES = {template.name: template for template in (IMPORT_KEY_MATERIAL, USER_DATA)}


@cache
def environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(TEMPLATE_DIR),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


def template_variables(template: BootTemplate) -> set[str]:
    env = environment()
    source, _, _ = env.loader.get_source(env, template.filename)
    return meta.find_undeclared_variables(env.parse(source))


def render(template: BootTemplate, slots: Mapping[str, str]) -> str:
    missing = [slot for slot in template.slots if slot not in slots]
    unknown = sorted(set(slots) - set(template.slots))
    if missing or unknown:
        raise TemplateSlotError(
            f"{template.filename}: missing slots {missing}, unknown slots {unknown}"
        )
    values = {slot: str(slots[slot]) for slot in template.slots}
    return environment().get_template(template.filename).render(**values)


def render_import_script(region: str, key_alias: str) -> str:
    return render(IMPORT_KEY_MATERIAL, {"region": region, "key_alias": key_alias})


def user_data_slots(key_material: KeyMaterial, import_script: str, key_id) -> dict:
    return {
        "public_key": key_material.public_body,
        "private_key": key_material.private_body,
        "import_script": import_script,
        "key_id": key_id,
    }
