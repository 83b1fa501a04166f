#!/usr/bin/env python3
"""Check that config.example.yaml loads and validates against the schema."""

import sys
from pathlib import Path

import yaml

from hr_notify.config.loader import validate_config_file
from hr_notify.notifications.registry import EVENT_REGISTRY

EXPECTED_SECTIONS = ["provider", "notifications", "rate_limit", "realtime", "company", "reminders", "logging"]


def verify_config_structure(config_file: Path = Path("config.example.yaml")) -> bool:
    """Validate the example file and report what it configures."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    if not validate_config_file(config_file):
        return False

    with open(config_file, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    missing = [section for section in EXPECTED_SECTIONS if section not in config]
    if missing:
        print(f"✗ {config_file} does not document: {', '.join(missing)}")
        return False

    provider = config["provider"]
    categories = config["notifications"].get("categories", {})
    print(f"  - Provider: {provider.get('kind', 'smtp')} via {provider.get('host', 'localhost')}:{provider.get('port', 587)}")
    print(f"  - {len(EVENT_REGISTRY)} registered event types")
    print(f"  - Disabled categories: {', '.join(k for k, v in categories.items() if not v) or 'none'}")
    print(f"  - Rate limit: {config['rate_limit'].get('max_dispatches')} per {config['rate_limit'].get('window')}")
    return True


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    sys.exit(0 if verify_config_structure(path) else 1)
