# deployer/config_loader.py
import os
from datetime import date
from pathlib import Path

import yaml

from deployer.errors import ConfigError

RUNTIME_CONFIG_PATH = Path("config/runtime.yaml")

DEFAULT_REGION = "us-west-2"
DEFAULT_KEY_NAME = "amazon-q-key-uswest2"
DEFAULT_TEMPLATE = "qclivscode-cfn_template.yaml"
STACK_NAME_PREFIX = "amazon-q-cli-vscode-v10-enhanced"

DEFAULTS = {
    "buffer_ratio": "1.25",
    "price_ceiling": "0.500",
    "lookback_minutes": 60,
    "poll_interval": 30,
    "deploy_timeout": 2400,
    "settle_delay": 30,
    "readiness_attempts": 25,
    "readiness_interval": 30,
    "service_port": 8080,
    "required_tools": ["ssh"],
    "installable_tools": {},
    "stack_tags": {
        "Purpose": "AmazonQ-CLI-VSCode",
        "Version": "V10-ENHANCED",
        "InstanceFamilies": "M5-M6i-C5-C6i-R5-R6i",
    },
}


def default_stack_name(today=None):
    today = today or date.today()
    return f"{STACK_NAME_PREFIX}-{today.strftime('%d%b%Y').lower()}"


def default_zones(region):
    return [f"{region}{suffix}" for suffix in "abcd"]


def load_runtime_config(path=None):
    """
    Loads runtime configuration for the deployer.
    Priority:
      1) Environment variables
      2) config/runtime.yaml (if present)
      3) Compiled-in defaults
    CLI flags are applied on top by apply_overrides().
    """
    cfg = {}
    path = Path(path) if path else RUNTIME_CONFIG_PATH

    # Load from file if it exists
    if path.exists():
        try:
            with open(path) as f:
                cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid runtime config {path}: {e}") from e
        if not isinstance(cfg, dict):
            raise ConfigError(f"Runtime config {path} must be a mapping")

    # Env vars take precedence
    stack_name = os.getenv("DEPLOY_STACK_NAME") or cfg.get("stack_name") or default_stack_name()
    region = os.getenv("AWS_REGION") or cfg.get("region") or DEFAULT_REGION
    key_name = os.getenv("DEPLOY_KEY_NAME") or cfg.get("key_name") or DEFAULT_KEY_NAME
    template_file = os.getenv("DEPLOY_TEMPLATE") or cfg.get("template_file") or DEFAULT_TEMPLATE
    profile = os.getenv("AWS_PROFILE") or cfg.get("profile")

    runtime = {key: cfg.get(key, value) for key, value in DEFAULTS.items()}
    runtime.update(
        {
            "stack_name": stack_name,
            "region": region,
            "key_name": key_name,
            "template_file": template_file,
            "profile": profile,
            "zones": cfg.get("zones"),
            "families": cfg.get("families"),
            "raw": cfg,
        }
    )
    return runtime


def apply_overrides(cfg, stack_name=None, region=None, key_name=None, template_file=None, profile=None):
    """Return a copy of cfg with any non-empty CLI values applied."""
    merged = dict(cfg)
    overrides = {
        "stack_name": stack_name,
        "region": region,
        "key_name": key_name,
        "template_file": template_file,
        "profile": profile,
    }
    merged.update({k: v for k, v in overrides.items() if v})
    if not merged.get("zones"):
        merged["zones"] = default_zones(merged["region"])
    return merged
