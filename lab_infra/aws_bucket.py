from lab_infra.config import StackConfig
from lab_infra.graph import ResourceSpec, StackBuilder


def make_bucket(builder: StackBuilder, config: StackConfig) -> ResourceSpec:
    # Bucket name is generated by the provider from the logical name
    return builder.add(
        f"{config.project_name}-bucket",
        "aws:s3/bucketV2:BucketV2",
        {"force_destroy": True, "tags": {"Name": "s3-encryption-lab-bucket"}},
    )


def make_kms_key(builder: StackBuilder, config: StackConfig) -> ResourceSpec:
    return builder.add(
        f"{config.project_name}-kms-key",
        "aws:kms/key:Key",
        {
            "description": "KMS key for S3 encryption client lab",
            "key_usage": "ENCRYPT_DECRYPT",
            "deletion_window_in_days": 7,
            "tags": {"Name": "s3-encryption-lab-kms-key"},
        },
        required=["key_usage"],
    )
