#!/usr/bin/env python3
"""Shareledger invariant checks against the platform params file."""

import json
import sys
from pathlib import Path

from shareledger.config import PARAMS_FILENAME, ConfigError, PlatformConfig


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / PARAMS_FILENAME


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check(params_path: Path = PARAMS_PATH) -> int:
    params = load_json(params_path)
    errors: list[str] = []

    # Same validation the service applies at startup.
    try:
        PlatformConfig.from_dict(params)
    except ConfigError as exc:
        errors.extend(str(exc).split("; "))

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else PARAMS_PATH
    raise SystemExit(check(path))
