from lab_infra.aws_bucket import make_bucket, make_kms_key
from lab_infra.aws_compute import make_compute, make_network
from lab_infra.aws_identity import make_instance_profile
from lab_infra.config import StackConfig
from lab_infra.graph import StackBuilder, StackDefinition
from lab_infra.image import ImageFilter
from lab_infra.key_material import KeyMaterial


def image_filter(config: StackConfig) -> ImageFilter:
    return ImageFilter(owner=config.image_owner, name_pattern=config.image_name_pattern)


def build_stack(config: StackConfig, key_material: KeyMaterial, image_id: str) -> StackDefinition:
    builder = StackBuilder(tags=config.common_tags())

    bucket = make_bucket(builder, config)
    kms_key = make_kms_key(builder, config)
    network = make_network(builder, config)
    instance_profile = make_instance_profile(builder, config)
    instance = make_compute(builder, config, network, instance_profile, kms_key, image_id, key_material)

    builder.export("bucketName", bucket)
    builder.export("kmsKeyId", kms_key)
    builder.export("vpcId", network.vpc)
    builder.export("subnetId", network.subnet)
    builder.export("instanceId", instance)
    builder.export("instancePublicIp", instance, "public_ip")
    builder.export("instancePrivateIp", instance, "private_ip")

    return builder.build(secrets=key_material.secrets())
