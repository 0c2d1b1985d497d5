from __future__ import annotations

import io
import os
import stat

import pytest
from botocore.exceptions import ClientError

from lambda_ci.config import RunOptions, Settings


def client_error(code: str, operation: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _next(responses: list):
    """Pop the next scripted response; the last one repeats."""
    item = responses.pop(0) if len(responses) > 1 else responses[0]
    if isinstance(item, Exception):
        raise item
    return item


def function_response(state: str, reason: str | None = None) -> dict:
    configuration = {"FunctionName": "fn", "State": state}
    if reason:
        configuration["StateReason"] = reason
    return {"Configuration": configuration, "ResponseMetadata": {"HTTPStatusCode": 200}}


class FakeLambda:
    def __init__(self):
        self.calls: list[str] = []
        self.create_error: Exception | None = None
        self.invoke_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.statuses: list = [function_response("Active")]
        self.invoke_response: dict = {
            "StatusCode": 200,
            "ExecutedVersion": "$LATEST",
            "LogResult": "U1RBUlQgUmVxdWVzdElkCg==",
        }
        self.invoke_payload = b'{"returncode": 0}'
        self.created: dict = {}
        self.deleted: list[str] = []

    def create_function(self, **kwargs):
        self.calls.append("create_function")
        if self.create_error:
            raise self.create_error
        self.created = kwargs
        return {
            "FunctionArn": f"arn:aws:lambda:us-east-1:123456789012:function:{kwargs['FunctionName']}",
            "State": "Pending",
        }

    def get_function(self, FunctionName):
        self.calls.append("get_function")
        return _next(self.statuses)

    def invoke(self, **kwargs):
        self.calls.append("invoke")
        if self.invoke_error:
            raise self.invoke_error
        self.invoked = kwargs
        return dict(self.invoke_response, Payload=io.BytesIO(self.invoke_payload))

    def delete_function(self, FunctionName):
        self.calls.append("delete_function")
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(FunctionName)


class FakeLogs:
    def __init__(self):
        self.calls: list[str] = []
        self.streams: list = [{"logStreams": [{"logStreamName": "2026/01/01/[$LATEST]abc"}]}]
        self.events: list = [
            {"events": [{"message": "START RequestId: 1\n"}, {"message": "ok 1 tests passed\n"}]}
        ]
        self.delete_error: Exception | None = None
        self.deleted: list[str] = []

    def describe_log_streams(self, logGroupName):
        self.calls.append("describe_log_streams")
        return _next(self.streams)

    def get_log_events(self, logGroupName, logStreamName):
        self.calls.append("get_log_events")
        return _next(self.events)

    def delete_log_group(self, logGroupName):
        self.calls.append("delete_log_group")
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(logGroupName)


class FakeCloudFormation:
    def __init__(self, outputs: dict | None = None):
        self.outputs = outputs if outputs is not None else {
            "BucketName": "integration-bucket",
            "IamRoleArn": "arn:aws:iam::123456789012:role/integration-role",
        }

    def describe_stacks(self, StackName):
        return {
            "Stacks": [
                {
                    "StackName": StackName,
                    "Outputs": [
                        {"OutputKey": key, "OutputValue": value}
                        for key, value in self.outputs.items()
                    ],
                }
            ]
        }


class FakeSession:
    def __init__(self, **clients):
        self.clients = clients

    def client(self, name):
        return self.clients[name]


@pytest.fixture
def aws_env(monkeypatch):
    values = {
        "access_key_id": "testing",
        "secret_access_key": "testing",
        "region_name": "us-east-1",
        "stack_name": "integration-stack",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    for key in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
        monkeypatch.setenv(key, "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    return values


@pytest.fixture
def settings(aws_env) -> Settings:
    return Settings.from_env()


@pytest.fixture
def release_dir(tmp_path):
    """A release directory holding pre-built artifacts."""
    release = tmp_path / "release"
    (release / "integration").mkdir(parents=True)
    (release / "out").mkdir()
    for path in (release / "integration" / "integration.test", release / "out" / "s3cli"):
        path.write_bytes(b"\x7fELF fake binary")
        os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return release


@pytest.fixture
def options(release_dir, tmp_path) -> RunOptions:
    output = tmp_path / "output"
    output.mkdir()
    return RunOptions(
        release_dir=release_dir,
        output_dir=output,
        skip_build=True,
        poll_interval=0,
    )


@pytest.fixture
def fake_lambda():
    return FakeLambda()


@pytest.fixture
def fake_logs():
    return FakeLogs()


@pytest.fixture
def fake_session(fake_lambda, fake_logs):
    return FakeSession(
        cloudformation=FakeCloudFormation(), **{"lambda": fake_lambda, "logs": fake_logs}
    )
