"""CloudWatch log retrieval and cleanup for the invoked function."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .errors import LogRetrievalError


def log_group_name(function_name: str) -> str:
    return f"/aws/lambda/{function_name}"


def discover_log_stream(
    logs_client: Any,
    group_name: str,
    *,
    retries: int = 5,
    poll_interval: float = 2.0,
) -> str:
    """Return the name of the group's first log stream.

    One immediate lookup, then up to `retries` more while the group is missing
    or has no streams yet.
    """

    last_problem = "no log streams"
    for attempt in range(retries + 1):
        if attempt:
            time.sleep(poll_interval)
            print(f"[lambda_ci] Retrieving CloudWatch logs; attempt: {attempt}", file=sys.stderr)
        try:
            streams = logs_client.describe_log_streams(logGroupName=group_name)
        except (ClientError, BotoCoreError) as e:
            last_problem = str(e)
            continue

        if streams.get("logStreams"):
            return streams["logStreams"][0]["logStreamName"]
        last_problem = "no log streams"

    raise LogRetrievalError(
        f"Could not find a log stream in {group_name} after {retries} retries: {last_problem}"
    )


def fetch_log_messages(logs_client: Any, group_name: str, stream_name: str) -> list[str]:
    events = logs_client.get_log_events(logGroupName=group_name, logStreamName=stream_name)
    return [event["message"] for event in events.get("events", [])]


def collect_log_events(
    logs_client: Any,
    group_name: str,
    stream_name: str,
    log_path: Path,
    *,
    attempts: int = 20,
    poll_interval: float = 2.0,
) -> Path:
    """Poll the stream until it yields events; write them one per line to log_path."""

    print(f"[lambda_ci] Lambda execution log output for {stream_name}", file=sys.stderr)
    log_path = Path(log_path)
    log_path.write_text("")

    for attempt in range(1, attempts + 1):
        time.sleep(poll_interval)
        print(f"[lambda_ci] Retrieving CloudWatch events; attempt: {attempt}", file=sys.stderr)
        try:
            messages = fetch_log_messages(logs_client, group_name, stream_name)
        except (ClientError, BotoCoreError) as e:
            raise LogRetrievalError(f"Failed to read log events from {stream_name}: {e}") from e

        lines = [message.rstrip("\n") for message in messages]
        if lines:
            log_path.write_text("\n".join(lines) + "\n")
            for line in lines:
                print(line)
        if log_path.stat().st_size > 0:
            return log_path

    raise LogRetrievalError(
        f"No log events in {group_name}/{stream_name} after {attempts} attempts"
    )


def delete_log_group(logs_client: Any, group_name: str) -> bool:
    """Delete the log group, best effort. Returns False if deletion failed."""
    try:
        logs_client.delete_log_group(logGroupName=group_name)
    except (ClientError, BotoCoreError) as e:
        print(f"[lambda_ci] Ignoring failure to delete {group_name}: {e}", file=sys.stderr)
        return False
    print(f"[lambda_ci] Deleted log group {group_name}", file=sys.stderr)
    return True
