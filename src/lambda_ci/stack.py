"""Read the bucket and role a run needs from a CloudFormation stack's outputs."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from .errors import StackOutputError


class StackOutputs(BaseModel):
    bucket_name: str
    iam_role_arn: str


def get_stack_info(cfn_client: Any, stack_name: str) -> dict:
    """Return the DescribeStacks record for a stack."""
    try:
        stacks = cfn_client.describe_stacks(StackName=stack_name)["Stacks"]
    except ClientError as e:
        error_message = e.response.get("Error", {}).get("Message", str(e))
        raise StackOutputError(f"Cannot describe stack {stack_name}: {error_message}") from e
    except BotoCoreError as e:
        raise StackOutputError(f"Cannot describe stack {stack_name}: {e}") from e
    if not stacks:
        raise StackOutputError(f"Stack {stack_name} not found")
    return stacks[0]


def get_stack_output(stack_info: dict, key: str) -> str:
    for output in stack_info.get("Outputs", []):
        if output.get("OutputKey") == key:
            return output["OutputValue"]
    raise StackOutputError(
        f"Stack {stack_info.get('StackName', '?')} has no output named {key}"
    )


def resolve_stack_outputs(cfn_client: Any, stack_name: str) -> StackOutputs:
    stack_info = get_stack_info(cfn_client, stack_name)
    return StackOutputs(
        bucket_name=get_stack_output(stack_info, "BucketName"),
        iam_role_arn=get_stack_output(stack_info, "IamRoleArn"),
    )
