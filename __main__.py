"""An AWS Python Pulumi program"""

import logging

import boto3
import pulumi

from lab_infra.config import StackConfig
from lab_infra.image import find_latest_image
from lab_infra.key_material import load_key_pair
from lab_infra.pulumi_program import render_stack
from lab_infra.stack import build_stack, image_filter

config = StackConfig.from_pulumi()
logging.basicConfig(level=config.log_level)

# Keys are read before anything is declared
key_material = load_key_pair(config.key_directory, config.public_key_file, config.private_key_file)

ec2 = boto3.client("ec2", region_name=config.region)
image_id = find_latest_image(ec2, image_filter(config))
pulumi.log.info(f"Using image {image_id}")

definition = build_stack(config, key_material, image_id)
render_stack(definition)
