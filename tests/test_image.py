"""Tests for the AMI lookup."""
from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from lab_infra.errors import AmbiguousImageError, NoMatchingImageError
from lab_infra.image import ImageFilter, find_latest_image, select_latest_image

FILTER = ImageFilter(owner="amazon", name_pattern="al2023-ami-2023.*-x86_64")


def _image(image_id: str, created: str) -> dict:
    return {"ImageId": image_id, "Name": f"al2023-ami-{image_id}", "CreationDate": created}


@pytest.fixture
def ec2():
    return boto3.client(
        "ec2",
        region_name="eu-west-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_latest_creation_date_wins(ec2) -> None:
    images = [
        _image("ami-00000000000000001", "2024-03-01T10:00:00.000Z"),
        _image("ami-00000000000000003", "2024-05-20T08:30:00.000Z"),
        _image("ami-00000000000000002", "2024-04-11T23:59:59.000Z"),
    ]
    with Stubber(ec2) as stubber:
        stubber.add_response("describe_images", {"Images": images}, FILTER.describe_images_params())

        assert find_latest_image(ec2, FILTER) == "ami-00000000000000003"
        stubber.assert_no_pending_responses()


def test_selection_does_not_depend_on_response_order() -> None:
    images = [
        _image("ami-b", "2024-05-20T08:30:00.000Z"),
        _image("ami-a", "2023-01-01T00:00:00.000Z"),
    ]

    assert select_latest_image(images)["ImageId"] == "ami-b"
    assert select_latest_image(list(reversed(images)))["ImageId"] == "ami-b"


def test_no_match_fails(ec2) -> None:
    with Stubber(ec2) as stubber:
        stubber.add_response("describe_images", {"Images": []}, FILTER.describe_images_params())

        with pytest.raises(NoMatchingImageError):
            find_latest_image(ec2, FILTER)


def test_tie_on_latest_creation_date_fails() -> None:
    images = [
        _image("ami-a", "2024-05-20T08:30:00.000Z"),
        _image("ami-b", "2024-05-20T08:30:00.000Z"),
        _image("ami-c", "2024-01-01T00:00:00.000Z"),
    ]

    with pytest.raises(AmbiguousImageError, match="ami-a"):
        select_latest_image(images)


def test_tie_below_the_latest_is_fine() -> None:
    images = [
        _image("ami-a", "2024-01-01T00:00:00.000Z"),
        _image("ami-b", "2024-01-01T00:00:00.000Z"),
        _image("ami-c", "2024-05-20T08:30:00.000Z"),
    ]

    assert select_latest_image(images)["ImageId"] == "ami-c"


def test_filter_covers_owner_name_virtualization_and_root_device() -> None:
    params = ImageFilter(owner="099720109477", name_pattern="ubuntu/*").describe_images_params()

    assert params["Owners"] == ["099720109477"]
    assert {f["Name"]: f["Values"] for f in params["Filters"]} == {
        "name": ["ubuntu/*"],
        "virtualization-type": ["hvm"],
        "root-device-type": ["ebs"],
        "state": ["available"],
    }
