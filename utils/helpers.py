"""
Utility functions for Confirm Gateway
"""
import os
import re
import yaml
from typing import Any, Dict


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with environment variable substitution

    Supports ${VAR_NAME} syntax for environment variables
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_str = f.read()

    # Replace environment variables
    def replace_env(match):
        var_name = match.group(1)
        value = os.getenv(var_name)
        if value is None:
            raise ValueError(f"Environment variable {var_name} is not set")
        return value

    config_str = re.sub(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}', replace_env, config_str)

    config = yaml.safe_load(config_str)
    return config or {}


def normalize_mention(mention: str) -> str:
    """Strip chat mention decoration (``@name``, ``<@name>``) and lowercase it."""
    value = (mention or "").strip()
    if value.startswith("<") and value.endswith(">"):
        value = value[1:-1]
    return value.lstrip("@").strip().lower()


def mask_code(code: str, visible: int = 2) -> str:
    """Shorten a confirmation code for log lines: ``ab12cd`` -> ``ab****``."""
    value = str(code or "")
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)
