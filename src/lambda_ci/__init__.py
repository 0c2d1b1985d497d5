"""Run an integration suite inside a short-lived AWS Lambda function."""

from .config import RunOptions, Settings
from .errors import IntegrationError
from .runner import run_integration

__all__ = ["IntegrationError", "RunOptions", "Settings", "run_integration"]
