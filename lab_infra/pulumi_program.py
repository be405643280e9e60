"""Registers a :class:`StackDefinition` with the running Pulumi program."""
from typing import Any, Mapping

import pulumi
import pulumi_aws as aws

from lab_infra import user_data
from lab_infra.graph import Ref, Rendered, StackDefinition

RESOURCE_TYPES: dict[str, type[pulumi.CustomResource]] = {
    "aws:ec2/vpc:Vpc": aws.ec2.Vpc,
    "aws:ec2/internetGateway:InternetGateway": aws.ec2.InternetGateway,
    "aws:ec2/subnet:Subnet": aws.ec2.Subnet,
    "aws:ec2/routeTable:RouteTable": aws.ec2.RouteTable,
    "aws:ec2/routeTableAssociation:RouteTableAssociation": aws.ec2.RouteTableAssociation,
    "aws:ec2/securityGroup:SecurityGroup": aws.ec2.SecurityGroup,
    "aws:ec2/vpcEndpoint:VpcEndpoint": aws.ec2.VpcEndpoint,
    "aws:ec2/instance:Instance": aws.ec2.Instance,
    "aws:iam/role:Role": aws.iam.Role,
    "aws:iam/rolePolicy:RolePolicy": aws.iam.RolePolicy,
    "aws:iam/rolePolicyAttachment:RolePolicyAttachment": aws.iam.RolePolicyAttachment,
    "aws:iam/instanceProfile:InstanceProfile": aws.iam.InstanceProfile,
    "aws:s3/bucketV2:BucketV2": aws.s3.BucketV2,
    "aws:kms/key:Key": aws.kms.Key,
}


def _render(template: user_data.BootTemplate, slots: Mapping[str, Any]) -> pulumi.Output[str]:
    return pulumi.Output.all(**slots).apply(lambda resolved: user_data.render(template, resolved))


def _input(value: Any, resources: Mapping[str, pulumi.CustomResource]) -> Any:
    if isinstance(value, Ref):
        return getattr(resources[value.resource], value.attribute)
    if isinstance(value, Rendered):
        slots = {slot: _input(item, resources) for slot, item in value.slots.items()}
        return _render(user_data.TEMPLATES[value.template], slots)
    if isinstance(value, Mapping):
        return {key: _input(item, resources) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_input(item, resources) for item in value]
    return value


def render_stack(definition: StackDefinition) -> dict[str, pulumi.CustomResource]:
    resources: dict[str, pulumi.CustomResource] = {}

    for spec in definition.order():
        resource_class = RESOURCE_TYPES[spec.type]
        props = {}
        for prop, value in spec.properties.items():
            value = _input(value, resources)
            if prop in spec.secret_properties:
                value = pulumi.Output.secret(value)
            props[prop] = value

        opts = pulumi.ResourceOptions(depends_on=[resources[name] for name in spec.depends_on])
        resources[spec.name] = resource_class(spec.name, opts=opts, **props)

    pulumi.log.info(f"Registered {len(resources)} resources")

    for binding in definition.outputs:
        pulumi.export(binding.name, getattr(resources[binding.resource], binding.attribute))

    return resources
