import logging
from dataclasses import dataclass
from typing import Any, Iterable

from lab_infra.errors import AmbiguousImageError, NoMatchingImageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageFilter:
    owner: str
    name_pattern: str
    virtualization_type: str = "hvm"
    root_device_type: str = "ebs"

    def describe_images_params(self) -> dict[str, Any]:
        return {
            "Owners": [self.owner],
            "Filters": [
                {"Name": "name", "Values": [self.name_pattern]},
                {"Name": "virtualization-type", "Values": [self.virtualization_type]},
                {"Name": "root-device-type", "Values": [self.root_device_type]},
                {"Name": "state", "Values": ["available"]},
            ],
        }


def select_latest_image(images: Iterable[dict], image_filter: ImageFilter | None = None) -> dict:
    """Pick the image with the latest ``CreationDate``.

    Several images sharing that latest date make the choice arbitrary, so that
    is an error rather than a silent pick.
    """
    images = list(images)
    if not images:
        raise NoMatchingImageError(f"No image matches {image_filter}")

    # CreationDate is ISO 8601 in UTC, lexical order is chronological order
    latest = max(image["CreationDate"] for image in images)
    newest = [image for image in images if image["CreationDate"] == latest]
    if len(newest) > 1:
        ids = sorted(image["ImageId"] for image in newest)
        raise AmbiguousImageError(f"Images {ids} share the latest creation date {latest}")
    return newest[0]


def find_latest_image(ec2_client, image_filter: ImageFilter) -> str:
    response = ec2_client.describe_images(**image_filter.describe_images_params())
    image = select_latest_image(response.get("Images", []), image_filter)
    logger.info("Using image %s (%s, created %s)", image["ImageId"], image.get("Name"), image["CreationDate"])
    return image["ImageId"]
