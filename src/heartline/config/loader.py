import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

from heartline.core.models import HeartlineConfig

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

ALLOWED_KEYS = {"heartline", "transport", "registry", "worker"}


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def load_config(path: Path) -> Dict[str, Any]:
    """
    Load heartline.yaml with environment variable interpolation.

    Returns only the known top-level sections: heartline, transport, registry, worker.
    A missing file yields an empty dict; unreadable YAML raises ValueError.
    """
    if not path.exists():
        return {}

    content = path.read_text()
    interpolated_content = interpolate_env_vars(content)
    try:
        full_config = yaml.safe_load(interpolated_content) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ValueError(f"Top level of {path} must be a mapping.")

    return {k: v for k, v in full_config.items() if k in ALLOWED_KEYS}


def load_heartline_config(path: Path) -> HeartlineConfig:
    """Load and validate heartline.yaml into a HeartlineConfig."""
    return HeartlineConfig.from_dict(load_config(path))
