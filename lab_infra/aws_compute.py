from dataclasses import dataclass

from lab_infra.config import StackConfig
from lab_infra.graph import Rendered, ResourceSpec, StackBuilder
from lab_infra.key_material import KeyMaterial
from lab_infra.user_data import USER_DATA, render_import_script, user_data_slots

ANYWHERE = "0.0.0.0/0"


@dataclass(frozen=True)
class Network:
    vpc: ResourceSpec
    subnet: ResourceSpec
    route_table: ResourceSpec
    route_table_association: ResourceSpec
    security_group: ResourceSpec
    s3_endpoint: ResourceSpec


def make_network(builder: StackBuilder, config: StackConfig) -> Network:
    prefix = config.project_name

    # Create VPC
    vpc = builder.add(
        f"{prefix}-vpc",
        "aws:ec2/vpc:Vpc",
        {"cidr_block": config.vpc_cidr, "enable_dns_hostnames": True, "enable_dns_support": True},
        required=["cidr_block"],
    )

    # Create Internet Gateway attached to the VPC
    internet_gateway = builder.add(f"{prefix}-igw", "aws:ec2/internetGateway:InternetGateway", {"vpc_id": vpc.ref()})

    # Create public Subnet, instances get a public IP on launch
    subnet_properties = {"vpc_id": vpc.ref(), "cidr_block": config.subnet_cidr, "map_public_ip_on_launch": True}
    if config.availability_zone:
        subnet_properties["availability_zone"] = config.availability_zone
    subnet = builder.add(
        f"{prefix}-public-subnet",
        "aws:ec2/subnet:Subnet",
        subnet_properties,
        required=["vpc_id", "cidr_block"],
    )

    # Create Route Table with default route to the Internet Gateway
    route_table = builder.add(
        f"{prefix}-public-rt",
        "aws:ec2/routeTable:RouteTable",
        {"vpc_id": vpc.ref(), "routes": [{"cidr_block": ANYWHERE, "gateway_id": internet_gateway.ref()}]},
    )
    route_table_association = builder.add(
        f"{prefix}-public-rta",
        "aws:ec2/routeTableAssociation:RouteTableAssociation",
        {"subnet_id": subnet.ref(), "route_table_id": route_table.ref()},
        tagged=False,
    )

    # Create Security Group: SSH from anywhere, allow all egress
    security_group = builder.add(
        f"{prefix}-ssh-sg",
        "aws:ec2/securityGroup:SecurityGroup",
        {
            "vpc_id": vpc.ref(),
            "description": "SSH access to the encryption lab instance",
            "ingress": [
                {"protocol": "tcp", "from_port": 22, "to_port": 22, "cidr_blocks": [config.ssh_ingress_cidr]},
            ],
            "egress": [
                {"protocol": "-1", "from_port": 0, "to_port": 0, "cidr_blocks": [ANYWHERE]},
            ],
        },
    )

    # S3 traffic from the subnet stays on the gateway endpoint
    s3_endpoint = builder.add(
        f"{prefix}-s3-endpoint",
        "aws:ec2/vpcEndpoint:VpcEndpoint",
        {
            "vpc_id": vpc.ref(),
            "service_name": f"com.amazonaws.{config.region}.s3",
            "vpc_endpoint_type": "Gateway",
            "route_table_ids": [route_table.ref()],
        },
        required=["vpc_id", "service_name"],
    )

    return Network(
        vpc=vpc,
        subnet=subnet,
        route_table=route_table,
        route_table_association=route_table_association,
        security_group=security_group,
        s3_endpoint=s3_endpoint,
    )


def make_compute(
    builder: StackBuilder,
    config: StackConfig,
    network: Network,
    instance_profile: ResourceSpec,
    kms_key: ResourceSpec,
    image_id: str,
    key_material: KeyMaterial,
) -> ResourceSpec:
    import_script = render_import_script(config.region, config.imported_key_alias)
    user_data = Rendered(USER_DATA.name, user_data_slots(key_material, import_script, kms_key.ref()))

    # Key material only travels in user_data, never in tags
    instance = builder.add(
        f"{config.project_name}-instance",
        "aws:ec2/instance:Instance",
        {
            "ami": image_id,
            "instance_type": config.instance_type,
            "subnet_id": network.subnet.ref(),
            "vpc_security_group_ids": [network.security_group.ref()],
            "iam_instance_profile": instance_profile.ref("name"),
            "associate_public_ip_address": True,
            "metadata_options": {"http_tokens": "required"},
            "user_data": user_data,
            "user_data_replace_on_change": True,
        },
        depends_on=[network.route_table_association, network.s3_endpoint],
        secret_properties=["user_data"],
        required=["ami", "instance_type", "subnet_id"],
    )
    return instance
