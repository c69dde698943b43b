"""Configuration management for the btc-broker system."""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union
import yaml

from .models.types import Fee, Percentage, to_decimal


NumberLike = Union[str, int, float, Decimal]


@dataclass
class SellerConfig:
    """Seller actor configuration.

    Decimal settings are kept as strings so YAML never turns them into
    binary floats.
    """
    fee_percent: Optional[NumberLike] = "0.25"  # None = no selling fee
    min_margin_percent: NumberLike = "5"
    staleness_seconds: int = 300
    inbound_capacity: int = 0  # 0 = unbounded
    outbound_capacity: int = 0

    def fee(self) -> Fee:
        """Selling fee policy."""
        if self.fee_percent is None:
            return Fee.none()
        return Fee.percentage(to_decimal(self.fee_percent))

    def min_margin(self) -> Percentage:
        """Minimum margin in percentage points."""
        return to_decimal(self.min_margin_percent)

    @property
    def staleness_ms(self) -> int:
        return self.staleness_seconds * 1000


@dataclass
class PaperConfig:
    """Paper settlement configuration."""
    fill_tolerance_percent: NumberLike = "0"

    def fill_tolerance(self) -> Percentage:
        return to_decimal(self.fill_tolerance_percent)


@dataclass
class Config:
    """Main configuration for the broker."""
    seller: SellerConfig = field(default_factory=SellerConfig)
    paper: PaperConfig = field(default_factory=PaperConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        config = cls()
        section_mapping = {
            "seller": config.seller,
            "paper": config.paper,
        }
        for section_name, section_obj in section_mapping.items():
            if section_name in data:
                for key, value in (data[section_name] or {}).items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)
        return config

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "seller": _plain(self.seller.__dict__),
            "paper": _plain(self.paper.__dict__),
        }


def _plain(section: dict) -> dict:
    # Decimals are written back as strings to keep them exact.
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in section.items()
    }


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for:
            1. BTC_BROKER_CONFIG env var
            2. ./config/default.yaml
            3. Uses default config

    Returns:
        Config object
    """
    if config_path is None:
        config_path = os.environ.get("BTC_BROKER_CONFIG")

    if config_path is None:
        default_path = Path("./config/default.yaml")
        if default_path.exists():
            config_path = str(default_path)

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f)
                return Config.from_dict(data or {})

    return Config()


def save_config(config: Config, config_path: str) -> None:
    """Save configuration to YAML file."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
