import ipaddress
import logging
from pathlib import Path
from typing import Any, Mapping

import pulumi
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CONFIG_NAMESPACE = "encryption-lab"


class StackConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    project_name: str = "s3-encryption-lab"
    region: str = "ap-southeast-1"

    key_directory: Path = Path("keys")
    public_key_file: str = "public_key.pem"
    private_key_file: str = "private_key.pem"

    vpc_cidr: str = "10.0.0.0/16"
    subnet_cidr: str = "10.0.1.0/24"
    availability_zone: str | None = None

    instance_type: str = "t3.micro"
    image_owner: str = "amazon"
    image_name_pattern: str = "al2023-ami-2023.*-x86_64"
    ssh_ingress_cidr: str = "0.0.0.0/0"

    imported_key_alias: str = "alias/s3-encryption-lab-imported"

    log_level: str = "INFO"
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("vpc_cidr", "subnet_cidr", "ssh_ingress_cidr")
    @classmethod
    def _valid_cidr(cls, value: str) -> str:
        ipaddress.ip_network(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level {value!r}")
        return value

    @property
    def public_key_path(self) -> Path:
        return self.key_directory / self.public_key_file

    @property
    def private_key_path(self) -> Path:
        return self.key_directory / self.private_key_file

    def common_tags(self) -> dict[str, str]:
        return {"Project": self.project_name, **self.tags}

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "StackConfig":
        return cls.model_validate({k: v for k, v in values.items() if v is not None})

    @classmethod
    def from_pulumi(cls) -> "StackConfig":
        """Read the stack configuration of the running Pulumi program."""
        config = pulumi.Config(CONFIG_NAMESPACE)
        values: dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            alias = field.alias or to_camel(name)
            if name == "tags":
                values[alias] = config.get_object(alias)
            else:
                values[alias] = config.get(alias)
        values["region"] = pulumi.Config("aws").get("region") or values.get("region")
        return cls.from_mapping(values)
