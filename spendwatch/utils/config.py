"""Configuration management for spendwatch."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

import streamlit as st

logger = logging.getLogger(__name__)


@dataclass
class AlertThresholds:
    """Alert detection thresholds."""
    renewal_horizon_days: int = 3
    low_balance_ratio: float = 0.1
    low_balance_window_hours: int = 24
    wallet_budget_alerts: bool = True


@dataclass
class PipelineConfig:
    """Evaluation cycle settings."""
    evaluator_timeout_seconds: Optional[float] = 5.0
    max_workers: int = 4


@dataclass
class AppConfig:
    """Application configuration."""
    db_path: Optional[Path] = None
    alerts: AlertThresholds = field(default_factory=AlertThresholds)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def default_db_path() -> Path:
    """Per-user database location used when DB_PATH is not configured."""
    return Path.home() / ".spendwatch" / "spendwatch.db"


def _read_secrets() -> dict:
    """Read Streamlit secrets, returning an empty mapping when none are configured."""
    try:
        return st.secrets.to_dict()
    except Exception as e:
        logger.debug(f"No secrets available, using defaults: {e}")
        return {}


def load_config() -> AppConfig:
    """Load configuration from Streamlit secrets."""
    secrets = _read_secrets()

    alert_section = secrets.get("alert_thresholds", {})
    defaults = AlertThresholds()
    alerts = AlertThresholds(
        renewal_horizon_days=int(alert_section.get("renewal_horizon_days", defaults.renewal_horizon_days)),
        low_balance_ratio=float(alert_section.get("low_balance_ratio", defaults.low_balance_ratio)),
        low_balance_window_hours=int(alert_section.get("low_balance_window_hours",
                                                       defaults.low_balance_window_hours)),
        wallet_budget_alerts=bool(alert_section.get("wallet_budget_alerts", defaults.wallet_budget_alerts)),
    )

    pipeline_section = secrets.get("pipeline", {})
    timeout = pipeline_section.get("evaluator_timeout_seconds", PipelineConfig.evaluator_timeout_seconds)
    pipeline = PipelineConfig(
        evaluator_timeout_seconds=float(timeout) if timeout is not None else None,
        max_workers=int(pipeline_section.get("max_workers", PipelineConfig.max_workers)),
    )

    db_path = secrets.get("DB_PATH")

    return AppConfig(
        db_path=Path(db_path) if db_path else default_db_path(),
        alerts=alerts,
        pipeline=pipeline,
    )


def validate_thresholds(thresholds: AlertThresholds) -> list[str]:
    """Return a list of problems with the configured thresholds."""
    problems = []
    if thresholds.renewal_horizon_days < 0:
        problems.append("renewal_horizon_days must not be negative")
    if not 0 < thresholds.low_balance_ratio <= 1:
        problems.append("low_balance_ratio must be in (0, 1]")
    if thresholds.low_balance_window_hours <= 0:
        problems.append("low_balance_window_hours must be positive")
    return problems
