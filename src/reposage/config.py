import os
import tempfile
from pathlib import Path

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_CLONE_BASE_URL = "https://github.com"
DEFAULT_REMOTE_EXECUTION_MARKET = "nvidia-3060"

TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _first_env(*env_vars: str) -> str | None:
    for env_var in env_vars:
        if value := os.environ.get(env_var):
            return value
    return None


def get_github_token() -> str | None:
    return _first_env("GITHUB_TOKEN", "GITHUB_PERSONAL_ACCESS_TOKEN")


def get_openai_api_key() -> str | None:
    return _first_env("OPENAI_API_KEY")


def get_openai_model() -> str:
    return _first_env("OPENAI_MODEL_NAME", "OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def get_openai_base_url() -> str | None:
    return _first_env("OPENAI_BASE_URL")


def get_test_command() -> str | None:
    return _first_env("TEST_COMMAND")


def get_lint_command() -> str | None:
    return _first_env("LINT_COMMAND")


def get_clone_base_url() -> str:
    return (_first_env("CLONE_BASE_URL") or DEFAULT_CLONE_BASE_URL).rstrip("/")


def get_workspace_root() -> Path:
    """The directory ephemeral workspaces are created in."""
    return Path(_first_env("WORKSPACE_DIR") or tempfile.gettempdir())


def remote_execution_enabled() -> bool:
    value = _first_env("REMOTE_EXECUTION_ENABLED", "NOSANA_ENABLED") or ""
    return value.strip().lower() in TRUTHY_VALUES


def get_remote_execution_market() -> str:
    return _first_env("REMOTE_EXECUTION_MARKET", "NOSANA_MARKET") or DEFAULT_REMOTE_EXECUTION_MARKET
