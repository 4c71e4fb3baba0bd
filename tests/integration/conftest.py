"""Integration fixtures.

Every test here runs inside moto's ``mock_aws`` context with dummy
credentials, so adapters build real boto3 sessions against fake services.
"""

import os

import boto3
import pytest
from moto import mock_aws

REGION = "us-west-2"


@pytest.fixture(autouse=True)
def mock_aws_env():
    """Activate moto's mock_aws context for every test in this directory."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION

    with mock_aws():
        yield


@pytest.fixture
def aws_region():
    return REGION


@pytest.fixture
def aws_session(aws_region):
    return boto3.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name=aws_region,
    )


@pytest.fixture
def moto_envelope(aws_region):
    return {
        "_uuid": "8a6b1c2e-0000-4000-8000-000000000002",
        "_batch_id": "batch-2",
        "datacenter_name": "dc",
        "datacenter_region": aws_region,
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "service": "svc-2",
    }


@pytest.fixture
def vpc_id(aws_session, aws_region):
    ec2 = aws_session.client("ec2", region_name=aws_region)
    return ec2.create_vpc(CidrBlock="10.10.0.0/16")["Vpc"]["VpcId"]
