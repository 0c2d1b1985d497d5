"""CLI for running the integration suite inside a throwaway AWS Lambda function."""

import argparse
import sys
from pathlib import Path

from .config import RunOptions, Settings
from .errors import IntegrationError
from .runner import run_integration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Build the integration suite, run it on AWS Lambda and clean up. "
            "Reads access_key_id, secret_access_key, region_name and stack_name "
            "from the environment."
        )
    )
    parser.add_argument(
        "--release-dir",
        type=Path,
        default=None,
        help="Directory the build runs in and package files are relative to (default: cwd)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Where lambda_output.log and lambda_output.json are written (default: cwd)",
    )
    parser.add_argument("--skip-build", action="store_true", help="Package pre-built artifacts")
    parser.add_argument(
        "--handler-asset",
        type=Path,
        help="Handler file to package as lambda_function.py (default: generated)",
    )
    parser.add_argument(
        "--include",
        action="append",
        dest="package_files",
        metavar="PATH",
        help=(
            "File to package, with directories dropped. Can be specified multiple times; "
            "the first is the test binary. (default: integration/integration.test, out/s3cli)"
        ),
    )
    parser.add_argument(
        "--test-arg",
        action="append",
        dest="test_args",
        metavar="ARG",
        help=(
            "Argument for the test binary. Can be specified multiple times; "
            "use the --test-arg=VALUE form for values starting with '-' (e.g. --test-arg=-ginkgo.v)."
        ),
    )
    parser.add_argument("--function-prefix", help="Function name prefix (default: s3cli-integration)")
    parser.add_argument("--runtime", help="Lambda runtime (default: python3.9)")
    parser.add_argument("--timeout", type=int, help="Function timeout in seconds (default: 300)")
    parser.add_argument(
        "--poll-interval", type=float, help="Seconds between polling attempts (default: 2)"
    )
    return parser


def options_from_args(args: argparse.Namespace) -> RunOptions:
    """Build RunOptions, keeping defaults for every flag that wasn't given."""
    overrides = {
        "release_dir": args.release_dir,
        "output_dir": args.output_dir,
        "skip_build": args.skip_build,
        "handler_asset": args.handler_asset,
        "package_files": args.package_files,
        "test_args": args.test_args,
        "function_prefix": args.function_prefix,
        "runtime": args.runtime,
        "timeout": args.timeout,
        "poll_interval": args.poll_interval,
    }
    return RunOptions(**{key: value for key, value in overrides.items() if value is not None})


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
        result = run_integration(settings, options_from_args(args))
    except IntegrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[lambda_ci] Status code: {result.status_code}", file=sys.stderr)
    sys.exit(0)


if __name__ == "__main__":
    main()
