from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Any

from .aws_infra import (
    InvocationResult,
    check_function_error,
    create_function,
    delete_function,
    generate_function_name,
    invoke_function,
    wait_for_active,
)
from .build import run_build
from .config import RunOptions, Settings
from .errors import ConfigError
from .logs import collect_log_events, delete_log_group, discover_log_stream, log_group_name
from .packaging import build_deployment_zip, build_test_runner_handler, write_deployment_zip
from .stack import resolve_stack_outputs


def build_payload(settings: Settings, bucket_name: str) -> dict:
    """The event handed to the test runner handler."""
    return {
        "region": settings.region_name,
        "bucket_name": bucket_name,
        "s3_host": settings.s3_host,
    }


def package(options: RunOptions) -> bytes:
    files = [options.resolve(path) for path in options.package_files]
    handler_asset = options.resolve(options.handler_asset) if options.handler_asset else None
    handler_source = None
    if handler_asset is None:
        handler_source = build_test_runner_handler(
            test_binary=files[0].name if files else "integration.test",
            test_args=options.test_args,
            cli_binary=files[1].name if len(files) > 1 else None,
        )

    zip_bytes = build_deployment_zip(
        files, handler_source=handler_source, handler_asset=handler_asset
    )
    zip_path = write_deployment_zip(zip_bytes, options.zip_path)
    print(
        f"[lambda_ci] Deployment package {zip_path}: {len(zip_bytes)} bytes",
        file=sys.stderr,
    )
    return zip_bytes


def _dump_response(response_path: Path) -> None:
    if not response_path.exists():
        return
    content = response_path.read_text(errors="replace")
    if content:
        print(f"[lambda_ci] Lambda response payload:\n{content}", file=sys.stderr)


def _cleanup(lambda_client: Any, logs_client: Any, function_name: str) -> None:
    print(f"[lambda_ci] Cleaning up {function_name}...", file=sys.stderr)
    delete_function(lambda_client, function_name)
    delete_log_group(logs_client, log_group_name(function_name))


def run_integration(
    settings: Settings,
    options: RunOptions | None = None,
    session: Any = None,
) -> InvocationResult:
    """Build, deploy, invoke and tear down one integration run.

    Once the function exists, it and its log group are deleted on every exit
    path. A FunctionError in the result fails the run after cleanup.
    """

    options = options or RunOptions()
    session = session or settings.session()
    try:
        options.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create output directory {options.output_dir}: {e}") from e

    print(f"[lambda_ci] Region: {settings.region_name}", file=sys.stderr)
    print(f"[lambda_ci] Stack: {settings.stack_name}", file=sys.stderr)
    outputs = resolve_stack_outputs(session.client("cloudformation"), settings.stack_name)
    print(f"[lambda_ci] Bucket: {outputs.bucket_name}", file=sys.stderr)
    print(f"[lambda_ci] Role ARN: {outputs.iam_role_arn}", file=sys.stderr)
    payload = build_payload(settings, outputs.bucket_name)

    fd, response_name = tempfile.mkstemp(suffix="-lambda.log")
    os.close(fd)
    response_path = Path(response_name)

    try:
        if options.skip_build:
            print("[lambda_ci] Skipping build", file=sys.stderr)
        else:
            run_build(options.build_steps, options.release_dir)
        zip_bytes = package(options)

        lambda_client = session.client("lambda")
        logs_client = session.client("logs")

        function_name = generate_function_name(options.function_prefix)
        create_function(
            lambda_client,
            function_name=function_name,
            role_arn=outputs.iam_role_arn,
            zip_bytes=zip_bytes,
            runtime=options.runtime,
            handler=options.handler,
            timeout=options.timeout,
        )

        try:
            wait_for_active(
                lambda_client,
                function_name,
                attempts=options.activation_attempts,
                poll_interval=options.poll_interval,
            )
            result = invoke_function(
                lambda_client, function_name, payload, response_path, options.result_path
            )

            group_name = log_group_name(function_name)
            stream_name = discover_log_stream(
                logs_client,
                group_name,
                retries=options.log_stream_retries,
                poll_interval=options.poll_interval,
            )
            collect_log_events(
                logs_client,
                group_name,
                stream_name,
                options.log_path,
                attempts=options.log_event_attempts,
                poll_interval=options.poll_interval,
            )
        finally:
            _cleanup(lambda_client, logs_client, function_name)

        check_function_error(result)
        print("[lambda_ci] Integration run succeeded", file=sys.stderr)
        return result
    finally:
        _dump_response(response_path)
        response_path.unlink(missing_ok=True)
