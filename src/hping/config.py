import logging
import os
import shutil
import sys
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

METHODS = ("HEAD", "GET", "POST")
USER_CONFIG_NAME = "hping.conf.yaml"


class ConfigError(Exception):
    """Settings could not be read or failed validation."""


class DisplayOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: bool = True
    url: bool = True
    ip: bool = True
    type: bool = False
    status_code: bool = True
    status_info: bool = True
    server: bool = True
    content_length: bool = False
    response_time: bool = True


class Settings(BaseModel):
    """Runtime settings. Units differ on purpose: seconds for interval and
    max_run_time, milliseconds for the per-request timeout."""

    model_config = ConfigDict(extra="ignore")

    interval: float = Field(default=1, gt=0)
    type: Literal["HEAD", "GET", "POST"] = "HEAD"
    timeout: int = Field(default=5000, gt=0)
    use_colors: bool = True
    show_stats_for_last: int = Field(default=100, ge=1)
    stats_for_last: int = Field(default=100, ge=1)
    max_run_time: float = Field(default=600, ge=0)
    log_status_change: bool = False
    log_file: str = "logs/hping.log"
    log_stats_on_exit: bool = True
    display_in_output: DisplayOptions = Field(default_factory=DisplayOptions)
    servers: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("timeout", mode="before")
    @classmethod
    def _whole_milliseconds(cls, value: Any) -> Any:
        return int(value) if isinstance(value, float) else value

    @field_validator("display_in_output", mode="before")
    @classmethod
    def _display_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("servers", mode="before")
    @classmethod
    def _servers_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        # Drop groups that are not lists so a single typo does not sink the whole file
        return {name: members for name, members in value.items() if isinstance(members, list)}


def parse_method(value: str) -> str:
    method = str(value).upper()
    if method not in METHODS:
        raise ValueError("method must be one of HEAD, GET, POST")
    return method


def normalize_settings(raw: Any) -> Settings:
    source = raw.get("default") if isinstance(raw, dict) and isinstance(raw.get("default"), dict) else raw
    if not isinstance(source, dict):
        source = {}
    try:
        return Settings.model_validate(source)
    except ValidationError as e:
        raise ConfigError(f"invalid settings: {e}") from e


def load_config(path: Path) -> Settings:
    try:
        with open(path, encoding="utf-8") as f:
            parsed = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    return normalize_settings(parsed or {})


# ────────────────────────────────
# Home Directory & Bootstrap
# ────────────────────────────────


def resolve_home_dir() -> Path:
    env_home = os.environ.get("HPING_HOME_DIR")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return (Path.home() / ".hping").resolve()


def user_config_path(home_dir: Path) -> Path:
    return home_dir / USER_CONFIG_NAME


def default_config_source():
    return resources.files("hping") / "data" / "hping.yaml"


def ensure_user_config(home_dir: Path, target: Path | None = None) -> Path:
    """Create the home and logs directories and seed the user config on first run."""
    target = target or user_config_path(home_dir)
    try:
        (home_dir / "logs").mkdir(parents=True, exist_ok=True)
        if not target.exists():
            with resources.as_file(default_config_source()) as source:
                shutil.copyfile(source, target)
            logger.info(f"Created default config at {target}")
    except OSError as e:
        raise ConfigError(f"cannot prepare {home_dir}: {e.strerror or e}") from e
    return target


def load_settings_with_fallback(
    home_dir: Path,
    config_path: Path | None = None,
    interval: float | None = None,
) -> tuple[Settings, Path]:
    user_path = ensure_user_config(home_dir)
    active = Path(config_path) if config_path else user_path

    try:
        settings = load_config(active)
    except ConfigError as e:
        if active == user_path:
            raise
        print(
            f'Specified config file "{active}" could not be used ({e}). '
            f"Using default config: {user_path}",
            file=sys.stderr,
        )
        active = user_path
        settings = load_config(active)

    if interval is not None:
        settings = settings.model_copy(update={"interval": interval})
    return settings, active


# ────────────────────────────────
# Targets
# ────────────────────────────────


def expand_targets(tokens: list[Any], servers: dict[str, list[str]]) -> list[str]:
    """Replace server-group names with their members; keep other tokens verbatim."""
    expanded: list[str] = []
    for token in tokens:
        if not isinstance(token, str) or not token.strip():
            continue
        if token in servers:
            expanded.extend(str(member) for member in servers[token])
            continue
        expanded.append(token)
    return expanded
