"""Tests for binding stack outputs to resolved state."""
from __future__ import annotations

import pytest

from lab_infra.engine import ResolvedState, ResourceState
from lab_infra.errors import UnresolvedOutputError
from lab_infra.graph import OutputBinding
from lab_infra.outputs import export_outputs

STATE = ResolvedState(
    [
        ResourceState(name="bucket", type="aws:s3/bucketV2:BucketV2", id="lab-bucket-1a2b3c"),
        ResourceState(
            name="instance",
            type="aws:ec2/instance:Instance",
            id="i-0abc",
            outputs={"publicIp": "203.0.113.10", "private_ip": "10.0.1.10"},
        ),
    ]
)


def test_ids_and_attributes_are_exported_as_strings() -> None:
    outputs = export_outputs(
        [
            OutputBinding("bucketName", "bucket"),
            OutputBinding("instancePublicIp", "instance", "public_ip"),
            OutputBinding("instancePrivateIp", "instance", "private_ip"),
        ],
        STATE,
    )

    assert outputs == {
        "bucketName": "lab-bucket-1a2b3c",
        "instancePublicIp": "203.0.113.10",
        "instancePrivateIp": "10.0.1.10",
    }


def test_resource_that_was_never_created_is_unresolved() -> None:
    with pytest.raises(UnresolvedOutputError) as excinfo:
        export_outputs([OutputBinding("kmsKeyId", "kms-key")], STATE)

    assert excinfo.value.output == "kmsKeyId"
    assert excinfo.value.resource == "kms-key"


def test_missing_attribute_is_unresolved() -> None:
    with pytest.raises(UnresolvedOutputError):
        export_outputs([OutputBinding("bucketArn", "bucket", "arn")], STATE)
