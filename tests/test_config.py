"""Tests for stack configuration loading."""
from __future__ import annotations

from pathlib import Path

import pulumi
import pytest
from pydantic import ValidationError

from lab_infra.config import StackConfig


def test_defaults_match_the_lab_layout() -> None:
    config = StackConfig()

    assert config.public_key_path == Path("keys/public_key.pem")
    assert config.private_key_path == Path("keys/private_key.pem")
    assert config.vpc_cidr == "10.0.0.0/16"
    assert config.common_tags() == {"Project": "s3-encryption-lab"}


def test_mapping_uses_camel_case_keys_and_ignores_unset_values() -> None:
    config = StackConfig.from_mapping(
        {
            "instanceType": "t3.small",
            "keyDirectory": "/etc/lab/keys",
            "availabilityZone": None,
            "tags": {"Owner": "qa"},
            "logLevel": "debug",
        }
    )

    assert config.instance_type == "t3.small"
    assert config.key_directory == Path("/etc/lab/keys")
    assert config.availability_zone is None
    assert config.log_level == "DEBUG"
    assert config.common_tags() == {"Project": "s3-encryption-lab", "Owner": "qa"}


@pytest.mark.parametrize(
    "values",
    [
        {"vpcCidr": "10.0.0.0/33"},
        {"subnetCidr": "not-a-cidr"},
        {"logLevel": "LOUD"},
    ],
)
def test_invalid_values_are_rejected(values: dict) -> None:
    with pytest.raises(ValidationError):
        StackConfig.from_mapping(values)


def test_config_is_immutable() -> None:
    config = StackConfig()

    with pytest.raises(ValidationError):
        config.instance_type = "m5.large"


@pytest.fixture
def pulumi_config():
    def apply(values: dict[str, str]) -> None:
        pulumi.runtime.set_all_config(values)

    yield apply
    pulumi.runtime.set_all_config({})


def test_from_pulumi_reads_the_project_namespace(pulumi_config) -> None:
    pulumi_config(
        {
            "encryption-lab:instanceType": "t3.small",
            "encryption-lab:keyDirectory": "/etc/lab/keys",
            "encryption-lab:tags": '{"Owner": "qa"}',
            "encryption-lab:logLevel": "warning",
        }
    )

    config = StackConfig.from_pulumi()

    assert config.instance_type == "t3.small"
    assert config.key_directory == Path("/etc/lab/keys")
    assert config.log_level == "WARNING"
    assert config.common_tags() == {"Project": "s3-encryption-lab", "Owner": "qa"}
    assert config.region == "ap-southeast-1"


def test_from_pulumi_prefers_the_provider_region(pulumi_config) -> None:
    pulumi_config({"encryption-lab:region": "eu-west-1", "aws:region": "us-east-2"})

    assert StackConfig.from_pulumi().region == "us-east-2"


def test_from_pulumi_falls_back_to_the_namespaced_region(pulumi_config) -> None:
    pulumi_config({"encryption-lab:region": "eu-west-1"})

    assert StackConfig.from_pulumi().region == "eu-west-1"
