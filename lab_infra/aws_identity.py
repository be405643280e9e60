import json

from lab_infra.config import StackConfig
from lab_infra.graph import ResourceSpec, StackBuilder

MANAGED_POLICIES = {
    "s3": "arn:aws:iam::aws:policy/AmazonS3FullAccess",
    "kms": "arn:aws:iam::aws:policy/AWSKeyManagementServicePowerUser",
}

EC2_ASSUME_ROLE_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": "ec2.amazonaws.com"},
            "Action": "sts:AssumeRole",
        }
    ],
}

# PowerUser does not cover bringing your own key material
KEY_IMPORT_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": ["kms:GetParametersForImport", "kms:ImportKeyMaterial", "kms:DeleteImportedKeyMaterial"],
            "Resource": "*",
        }
    ],
}


def make_instance_profile(builder: StackBuilder, config: StackConfig) -> ResourceSpec:
    prefix = config.project_name

    role = builder.add(
        f"{prefix}-instance-role",
        "aws:iam/role:Role",
        {"assume_role_policy": json.dumps(EC2_ASSUME_ROLE_POLICY, sort_keys=True)},
        required=["assume_role_policy"],
    )

    grants = []
    for short_name, policy_arn in MANAGED_POLICIES.items():
        attachment = builder.add(
            f"{prefix}-{short_name}-policy-attachment",
            "aws:iam/rolePolicyAttachment:RolePolicyAttachment",
            {"role": role.ref("name"), "policy_arn": policy_arn},
            tagged=False,
        )
        grants.append(attachment)

    inline_policy = builder.add(
        f"{prefix}-key-import-policy",
        "aws:iam/rolePolicy:RolePolicy",
        {"role": role.ref("name"), "policy": json.dumps(KEY_IMPORT_POLICY, sort_keys=True)},
        tagged=False,
    )

    # The boot script calls KMS as soon as the instance is up
    return builder.add(
        f"{prefix}-instance-profile",
        "aws:iam/instanceProfile:InstanceProfile",
        {"role": role.ref("name")},
        depends_on=[*grants, inline_policy],
    )
