import json
import logging
from pathlib import Path
from typing import Callable, Iterable

import boto3
import typer
from pydantic import ValidationError

from lab_infra.config import CONFIG_NAMESPACE, StackConfig
from lab_infra.engine import Engine
from lab_infra.errors import InfraError
from lab_infra.image import ImageFilter, find_latest_image
from lab_infra.key_material import load_key_pair
from lab_infra.outputs import export_outputs
from lab_infra.pulumi_engine import PulumiEngine
from lab_infra.stack import build_stack, image_filter

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Reconcile the S3 encryption lab stack through the Pulumi Automation API.",
)


def provision(config: StackConfig, engine: Engine, lookup_image: Callable[[ImageFilter], str]) -> dict[str, str]:
    """Build the stack, reconcile it through ``engine`` and return its outputs.

    Key material is read first so a missing key file stops the run before any
    resource is declared or the engine is touched.
    """
    logger.info("Provisioning %s in %s", config.project_name, config.region)
    key_material = load_key_pair(config.key_directory, config.public_key_file, config.private_key_file)
    image_id = lookup_image(image_filter(config))
    definition = build_stack(config, key_material, image_id)

    operations = engine.plan(definition)
    state = engine.apply(operations)
    return export_outputs(definition.outputs, state)


def aws_image_lookup(region: str) -> Callable[[ImageFilter], str]:
    def lookup(image_filter: ImageFilter) -> str:
        return find_latest_image(boto3.client("ec2", region_name=region), image_filter)

    return lookup


def _pairs(values: Iterable[str], option: str) -> dict[str, str]:
    pairs = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint=option)
        pairs[key] = item
    return pairs


@app.command()
def up(
    stack: str = typer.Option("dev", "--stack", "-s", help="Pulumi stack to reconcile."),
    settings: list[str] | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Stack setting as camelCase KEY=VALUE, e.g. instanceType=t3.small. Repeatable.",
    ),
    tags: list[str] | None = typer.Option(None, "--tag", help="Extra resource tag as KEY=VALUE. Repeatable."),
    key_directory: Path | None = typer.Option(
        None,
        "--key-directory",
        file_okay=False,
        help="Directory holding public_key.pem and private_key.pem.",
    ),
) -> None:
    """Preview and apply the stack, then print its outputs as JSON."""
    values: dict = _pairs(settings or [], "--config")
    if tags:
        values["tags"] = _pairs(tags, "--tag")
    if key_directory is not None:
        values["keyDirectory"] = key_directory
    try:
        config = StackConfig.from_mapping(values)
    except ValidationError as e:
        raise typer.BadParameter(str(e), param_hint="--config") from e

    logging.basicConfig(level=config.log_level)
    engine = PulumiEngine(CONFIG_NAMESPACE, stack, config={"aws:region": config.region})
    try:
        outputs = provision(config, engine, aws_image_lookup(config.region))
    except InfraError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from e

    typer.echo(json.dumps(outputs, indent=2, sort_keys=True))


def main() -> None:
    """Console script entry point."""
    app()
