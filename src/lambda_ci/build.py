"""Build the integration-test artifacts before packaging."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from .errors import BuildError


class BuildStep(BaseModel):
    """One build command, run from the release directory."""

    name: str
    argv: list[str]
    env: dict[str, str] = Field(default_factory=dict)


DEFAULT_BUILD_STEPS = [
    BuildStep(
        name="s3cli",
        argv=["go", "build", "-o", "out/s3cli", "github.com/cloudfoundry/bosh-s3cli"],
        env={"CGO_ENABLED": "0", "GOOS": "linux", "GOARCH": "amd64"},
    ),
    BuildStep(
        name="integration suite",
        argv=["scripts/ginkgo", "build", "integration"],
        env={"CGO_ENABLED": "0"},
    ),
]


def toolchain_version(argv: list[str] | None = None) -> str | None:
    """Return the toolchain version line, or None if it can't be determined."""
    try:
        result = subprocess.run(
            argv or ["go", "version"], capture_output=True, text=True, timeout=30
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def run_build(steps: Iterable[BuildStep], release_dir: Path) -> None:
    """Run every build step in order; the first failure aborts the build."""
    version = toolchain_version()
    print(
        f"[lambda_ci] Building artifact with {version or 'unknown toolchain'}...",
        file=sys.stderr,
    )

    for step in steps:
        print(f"[lambda_ci] Build step '{step.name}': {' '.join(step.argv)}", file=sys.stderr)
        env = dict(os.environ)
        env.update(step.env)
        try:
            result = subprocess.run(step.argv, cwd=release_dir, env=env)
        except OSError as e:
            raise BuildError(f"Build step '{step.name}' could not start: {e}") from e
        if result.returncode != 0:
            raise BuildError(
                f"Build step '{step.name}' failed with exit code {result.returncode}"
            )
