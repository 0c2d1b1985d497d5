from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Optional

from .errors import PackagingError

HANDLER_MODULE = "lambda_function.py"

_HANDLER_BODY = '''

def _export_event(event):
    env = dict(os.environ)
    for key, value in (event or {}).items():
        env[str(key).upper()] = str(value)
    if CLI_BINARY:
        env['S3_CLI_PATH'] = os.path.join(TASK_ROOT, CLI_BINARY)
    return env


def test_runner_handler(event, context):
    """Run the packaged integration suite with the event exported as env vars."""
    print(f'[HANDLER] Running {TEST_BINARY} {" ".join(TEST_ARGS)}', flush=True)
    result = subprocess.run(
        [os.path.join(TASK_ROOT, TEST_BINARY)] + TEST_ARGS,
        cwd=TASK_ROOT,
        env=_export_event(event),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    print(result.stdout, flush=True)

    if result.returncode != 0:
        raise RuntimeError(f'{TEST_BINARY} exited with code {result.returncode}')

    return {'returncode': result.returncode}
'''


def build_test_runner_handler(
    test_binary: str = "integration.test",
    test_args: Optional[list[str]] = None,
    cli_binary: Optional[str] = "s3cli",
) -> str:
    """Return the source of the handler module that runs inside AWS Lambda.

    Each invocation exports the event's keys, upper-cased, as environment
    variables, then runs the test binary from the task root. A non-zero exit
    is raised so the invocation reports a FunctionError.
    """

    header = (
        "import os\n"
        "import subprocess\n"
        "\n"
        "TASK_ROOT = os.environ.get('LAMBDA_TASK_ROOT', os.getcwd())\n"
        f"TEST_BINARY = {test_binary!r}\n"
        f"TEST_ARGS = {list(test_args or [])!r}\n"
        f"CLI_BINARY = {cli_binary!r}\n"
    )
    return header + _HANDLER_BODY


def _add_file_to_zip(zip_file: zipfile.ZipFile, path: Path) -> None:
    """Add a file under its basename, keeping its permission bits."""
    if not path.is_file():
        raise PackagingError(f"Cannot package '{path}': file not found")
    arcname = path.name
    if arcname in zip_file.namelist():
        raise PackagingError(f"Cannot package '{path}': duplicate entry '{arcname}'")
    zip_file.write(path, arcname)


def build_deployment_zip(
    files: list[Path],
    handler_source: Optional[str] = None,
    handler_asset: Optional[Path] = None,
) -> bytes:
    """Create the deployment zip: the given files plus the handler module.

    Parameters
    - files: paths to package; directory components are dropped
    - handler_source: generated handler code, used when no asset is given
    - handler_asset: an existing handler file to package as lambda_function.py

    Returns
    - Zip file bytes suitable for AWS Lambda CreateFunction.
    """

    if handler_asset is None and handler_source is None:
        handler_source = build_test_runner_handler()

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in files:
            _add_file_to_zip(zf, Path(path))

        if HANDLER_MODULE in zf.namelist():
            raise PackagingError(f"Cannot package handler: duplicate entry '{HANDLER_MODULE}'")
        if handler_asset is not None:
            if not Path(handler_asset).is_file():
                raise PackagingError(f"Handler asset '{handler_asset}' not found")
            zf.write(handler_asset, HANDLER_MODULE)
        else:
            info = zipfile.ZipInfo(HANDLER_MODULE)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            zf.writestr(info, handler_source)

    return buffer.getvalue()


def write_deployment_zip(zip_bytes: bytes, zip_path: Path) -> Path:
    """Write the zip next to the build output, replacing any earlier one."""
    zip_path = Path(zip_path)
    zip_path.write_bytes(zip_bytes)
    return zip_path
