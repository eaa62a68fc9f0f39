"""Platform configuration loaded from config/platform_params.json.

Fee ceilings are fixed platform-wide. The params file may lower them but
never raise them above PLATFORM_FEE_HARD_CEILING_BP and
MANAGER_FEE_HARD_CEILING_BP; configured rates must sit within the
ceilings. Invalid configuration fails at load time, never at first use.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from shareledger.models.distribution import DenominatorPolicy

PLATFORM_FEE_HARD_CEILING_BP = 1_000  # 10%
MANAGER_FEE_HARD_CEILING_BP = 2_000  # 20%

PARAMS_FILENAME = "platform_params.json"

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class ConfigError(ValueError):
    """Raised when platform parameters are missing or out of bounds."""


@dataclass(frozen=True)
class PlatformConfig:
    operator_id: str = "platform-operator"
    platform_fee_bp: int = 250
    manager_fee_bp: int = 500
    max_platform_fee_bp: int = PLATFORM_FEE_HARD_CEILING_BP
    max_manager_fee_bp: int = MANAGER_FEE_HARD_CEILING_BP
    denominator_policy: DenominatorPolicy = DenominatorPolicy.TOTAL_SUPPLY
    max_batch_size: int = 100

    def __post_init__(self) -> None:
        errors = validate_params(self)
        if errors:
            raise ConfigError("; ".join(errors))

    @classmethod
    def from_dict(cls, params: dict[str, Any]) -> PlatformConfig:
        fees = params.get("fees", {})
        distribution = params.get("distribution", {})
        platform = params.get("platform", {})
        try:
            policy = DenominatorPolicy(
                distribution.get("denominator_policy", DenominatorPolicy.TOTAL_SUPPLY.value)
            )
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return cls(
            operator_id=platform.get("operator_id", "platform-operator"),
            platform_fee_bp=fees.get("platform_fee_bp", 250),
            manager_fee_bp=fees.get("manager_fee_bp", 500),
            max_platform_fee_bp=fees.get("max_platform_fee_bp", PLATFORM_FEE_HARD_CEILING_BP),
            max_manager_fee_bp=fees.get("max_manager_fee_bp", MANAGER_FEE_HARD_CEILING_BP),
            denominator_policy=policy,
            max_batch_size=distribution.get("max_batch_size", 100),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path = DEFAULT_CONFIG_DIR) -> PlatformConfig:
        """Load from ``<config_dir>/platform_params.json``."""
        path = Path(config_dir) / PARAMS_FILENAME
        try:
            params = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigError(f"Missing platform params: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Malformed platform params {path}: {exc}") from exc
        return cls.from_dict(params)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_params(config: PlatformConfig) -> list[str]:
    """Return a list of violations. Empty list means valid."""
    errors: list[str] = []
    if not config.operator_id:
        errors.append("operator_id must not be empty")
    for name in (
        "platform_fee_bp", "manager_fee_bp",
        "max_platform_fee_bp", "max_manager_fee_bp", "max_batch_size",
    ):
        if not _is_int(getattr(config, name)):
            errors.append(f"{name} must be an integer")
    if errors:
        return errors

    if not 0 <= config.max_platform_fee_bp <= PLATFORM_FEE_HARD_CEILING_BP:
        errors.append(
            f"max_platform_fee_bp must be in [0, {PLATFORM_FEE_HARD_CEILING_BP}], "
            f"got {config.max_platform_fee_bp}"
        )
    if not 0 <= config.max_manager_fee_bp <= MANAGER_FEE_HARD_CEILING_BP:
        errors.append(
            f"max_manager_fee_bp must be in [0, {MANAGER_FEE_HARD_CEILING_BP}], "
            f"got {config.max_manager_fee_bp}"
        )
    if not 0 <= config.platform_fee_bp <= config.max_platform_fee_bp:
        errors.append(
            f"platform_fee_bp must be in [0, {config.max_platform_fee_bp}], "
            f"got {config.platform_fee_bp}"
        )
    if not 0 <= config.manager_fee_bp <= config.max_manager_fee_bp:
        errors.append(
            f"manager_fee_bp must be in [0, {config.max_manager_fee_bp}], "
            f"got {config.manager_fee_bp}"
        )
    if config.max_batch_size < 1:
        errors.append(f"max_batch_size must be >= 1, got {config.max_batch_size}")
    return errors
