from __future__ import annotations

import base64
import json
import sys
import time
from pathlib import Path
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, Field

from .errors import FunctionCreateError, FunctionNotReadyError, InvocationError

_RESULT_KEYS = ("StatusCode", "FunctionError", "LogResult", "ExecutedVersion")


class FunctionStatus(BaseModel):
    state: Optional[str] = None
    state_reason: Optional[str] = None
    raw: dict = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: dict) -> "FunctionStatus":
        configuration = response.get("Configuration", {})
        return cls(
            state=configuration.get("State"),
            state_reason=configuration.get("StateReason") or None,
            raw={k: v for k, v in response.items() if k != "ResponseMetadata"},
        )


class InvocationResult(BaseModel):
    """Metadata of a synchronous invocation, in the same shape the AWS CLI prints."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: Optional[int] = Field(default=None, alias="StatusCode")
    function_error: Optional[str] = Field(default=None, alias="FunctionError")
    log_result: Optional[str] = Field(default=None, alias="LogResult")
    executed_version: Optional[str] = Field(default=None, alias="ExecutedVersion")
    response_payload: str = ""

    def to_json(self) -> str:
        return json.dumps(
            self.model_dump(by_alias=True, exclude_none=True, exclude={"response_payload"}),
            indent=4,
        )

    def log_tail(self) -> str:
        if not self.log_result:
            return ""
        return base64.b64decode(self.log_result).decode("utf-8", errors="replace")


def _error_message(e: Exception) -> str:
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        return f"{error.get('Code', 'Unknown')} - {error.get('Message', str(e))}"
    return str(e)


def generate_function_name(prefix: str, now: float | None = None) -> str:
    """Return a per-run function name: the prefix plus the current unix time."""
    if now is None:
        now = time.time()
    return f"{prefix}-{int(now)}"


def create_function(
    lambda_client: Any,
    *,
    function_name: str,
    role_arn: str,
    zip_bytes: bytes,
    runtime: str = "python3.9",
    handler: str = "lambda_function.test_runner_handler",
    timeout: int = 300,
) -> str:
    """Create the Lambda function; return its ARN."""

    print(f"[lambda_ci] Creating Lambda function: {function_name}", file=sys.stderr)
    try:
        resp = lambda_client.create_function(
            FunctionName=function_name,
            Role=role_arn,
            Runtime=runtime,
            Handler=handler,
            Code={"ZipFile": zip_bytes},
            Timeout=timeout,
        )
    except (ClientError, BotoCoreError) as e:
        print(f"[lambda_ci] {_error_message(e)}", file=sys.stderr)
        raise FunctionCreateError(
            f"Failed to create Lambda function {function_name}: {_error_message(e)}"
        ) from e

    print(
        f"[lambda_ci] Created {resp.get('FunctionArn')} (state: {resp.get('State', 'unknown')})",
        file=sys.stderr,
    )
    return resp["FunctionArn"]


def get_function_status(lambda_client: Any, function_name: str) -> FunctionStatus:
    return FunctionStatus.from_response(lambda_client.get_function(FunctionName=function_name))


def wait_for_active(
    lambda_client: Any,
    function_name: str,
    *,
    attempts: int = 30,
    poll_interval: float = 2.0,
) -> FunctionStatus:
    """Poll GetFunction until the function is Active.

    Every attempt sleeps first. A Failed state or an exhausted budget raises
    FunctionNotReadyError carrying the last status (or error) observed.
    """

    print("[lambda_ci] Waiting for Lambda function to become active...", file=sys.stderr)
    last_status: FunctionStatus | None = None

    for attempt in range(1, attempts + 1):
        time.sleep(poll_interval)
        print(f"[lambda_ci] Checking for function readiness; attempt: {attempt}", file=sys.stderr)

        try:
            status = get_function_status(lambda_client, function_name)
        except (ClientError, BotoCoreError) as e:
            print("[lambda_ci] Function not found yet, retrying...", file=sys.stderr)
            if attempt == attempts:
                raise FunctionNotReadyError(
                    f"Function {function_name} not found after {attempts} attempts. "
                    f"Last error: {_error_message(e)}"
                ) from e
            continue

        last_status = status
        print(f"[lambda_ci] Function state: {status.state}", file=sys.stderr)
        if status.state_reason:
            print(f"[lambda_ci] State reason: {status.state_reason}", file=sys.stderr)

        if status.state == "Active":
            print("[lambda_ci] Lambda function is active and ready", file=sys.stderr)
            return status
        if status.state == "Failed":
            print(json.dumps(status.raw, indent=2, default=str), file=sys.stderr)
            raise FunctionNotReadyError(
                f"Lambda function {function_name} creation failed: "
                f"{status.state_reason or 'no reason given'}"
            )

    raise FunctionNotReadyError(
        f"Lambda function {function_name} did not become Active after {attempts} attempts; "
        f"last state: {last_status.state if last_status else 'unknown'}"
        + (f" ({last_status.state_reason})" if last_status and last_status.state_reason else "")
    )


def _log_function_details(lambda_client: Any, function_name: str) -> None:
    print("[lambda_ci] Attempting to retrieve function details...", file=sys.stderr)
    try:
        status = get_function_status(lambda_client, function_name)
    except (ClientError, BotoCoreError) as e:
        print(f"[lambda_ci] {_error_message(e)}", file=sys.stderr)
        return
    print(json.dumps(status.raw, indent=2, default=str), file=sys.stderr)


def invoke_function(
    lambda_client: Any,
    function_name: str,
    payload: dict,
    response_path: Path,
    result_path: Optional[Path] = None,
) -> InvocationResult:
    """Invoke synchronously with the log tail.

    The response payload goes to response_path. The invocation metadata, or the
    service error when the call itself fails, goes to result_path as JSON.
    """

    body = json.dumps(payload)
    print(f"[lambda_ci] Invoking Lambda function with payload: {body}", file=sys.stderr)
    invoke_start = time.time()
    try:
        resp = lambda_client.invoke(
            FunctionName=function_name,
            InvocationType="RequestResponse",
            LogType="Tail",
            Payload=body.encode("utf-8"),
        )
    except (ClientError, BotoCoreError) as e:
        print(f"[lambda_ci] ERROR: Failed to invoke Lambda function: {_error_message(e)}", file=sys.stderr)
        if result_path is not None:
            write_error(e, result_path)
        _log_function_details(lambda_client, function_name)
        raise InvocationError(
            f"Failed to invoke Lambda function {function_name}: {_error_message(e)}"
        ) from e

    raw_payload = resp["Payload"].read()
    Path(response_path).write_bytes(raw_payload)

    result = InvocationResult.model_validate(
        {key: resp[key] for key in _RESULT_KEYS if key in resp}
        | {"response_payload": raw_payload.decode("utf-8", errors="replace")}
    )
    print(
        f"[lambda_ci] Lambda invocation complete, status: {result.status_code}, "
        f"duration: {time.time() - invoke_start:.2f}s",
        file=sys.stderr,
    )
    print(result.to_json(), file=sys.stderr)
    if result_path is not None:
        write_result(result, result_path)

    tail = result.log_tail()
    if tail:
        print("[lambda_ci] Log tail:", file=sys.stderr)
        for line in tail.splitlines():
            print(f"  {line}", file=sys.stderr)
    return result


def write_result(result: InvocationResult, path: Path) -> Path:
    path = Path(path)
    path.write_text(result.to_json() + "\n")
    return path


def write_error(e: Exception, path: Path) -> Path:
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        body = {"Error": {"Code": error.get("Code", "Unknown"), "Message": error.get("Message", str(e))}}
    else:
        body = {"Error": {"Code": type(e).__name__, "Message": str(e)}}
    path = Path(path)
    path.write_text(json.dumps(body, indent=4) + "\n")
    return path


def check_function_error(result: InvocationResult) -> None:
    """Raise if the invocation reported any FunctionError."""
    if result.function_error:
        raise InvocationError(
            f"Lambda function reported {result.function_error} error: {result.response_payload}"
        )


def delete_function(lambda_client: Any, function_name: str) -> bool:
    """Delete the function, best effort. Returns False if deletion failed."""
    try:
        lambda_client.delete_function(FunctionName=function_name)
    except (ClientError, BotoCoreError) as e:
        print(f"[lambda_ci] Ignoring failure to delete {function_name}: {_error_message(e)}", file=sys.stderr)
        return False
    print(f"[lambda_ci] Deleted Lambda function {function_name}", file=sys.stderr)
    return True
