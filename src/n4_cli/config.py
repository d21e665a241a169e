"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def _lookup(match: re.Match[str]) -> str:
    name = match.group(1)
    if name not in os.environ:
        raise ValueError(f"Environment variable {name} is not set")
    return os.environ[name]


def substitute_env_vars(value: Any) -> Any:
    """Replace ``${NAME}`` references in strings, walking dicts and lists.

    Raises ValueError naming the first variable that is not set.
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_lookup, value)
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


class CloudflareConfig(BaseModel):
    """Cloudflare API settings."""

    api_token: str | None = None
    account_id: str | None = None
    base_url: str = "https://api.cloudflare.com/client/v4"
    timeout_seconds: float = 30.0


class SupabaseConfig(BaseModel):
    """Supabase project settings."""

    url: str | None = None
    anon_key: str | None = None
    timeout_seconds: float = 15.0


class TemplateConfig(BaseModel):
    """Project template and Pages project defaults."""

    repo_url: str = "https://github.com/nicholasoxford/n4-pages.git"
    default_project_name: str = "n4-stack"
    compatibility_date: str = "2023-10-11"
    production_branch: str = "main"
    public_dir: str = "./public"


class PipelineConfig(BaseModel):
    """Local install/build/deploy commands."""

    install_command: list[str] = Field(default_factory=lambda: ["npm", "install"])
    build_command: list[str] = Field(default_factory=lambda: ["npm", "run", "build"])
    deploy_command: list[str] = Field(
        default_factory=lambda: ["npx", "wrangler", "pages", "deploy"]
    )
    timeout_seconds: float | None = None  # None waits for the child indefinitely


class LoggingConfig(BaseModel):
    """Diagnostic logging settings."""

    level: str = "WARNING"
    format: str = "text"  # text | json


class Config(BaseModel):
    """Main configuration for n4-cli."""

    cloudflare: CloudflareConfig = Field(default_factory=CloudflareConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    template: TemplateConfig = Field(default_factory=TemplateConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load a ``.yaml``/``.yml`` file, or JSON for any other suffix.

        ``${VAR}`` references are resolved before validation.
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        return cls.model_validate(substitute_env_vars(data))
