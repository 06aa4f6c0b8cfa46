"""
Configuration management for Crossover Trader
Loads and validates configuration from YAML files and environment variables
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml
from dotenv import load_dotenv


DEFAULT_INSTRUMENTS = [
    "BTC-USDT",
    "ETH-USDT",
    "SOL-USDT",
    "XRP-USDT",
    "DOGE-USDT",
    "ADA-USDT",
]


class Config:
    """Configuration manager for the trading engine"""

    def __init__(self, config_dir: str = "configs"):
        """
        Initialize configuration manager

        Args:
            config_dir: Directory containing configuration files, relative to the
                project root unless absolute
        """
        self.config_dir = Path(config_dir)
        self.project_root = Path(__file__).parent.parent.parent

        # Load environment variables
        load_dotenv(self.project_root / ".env")

        # Load YAML configurations
        self.main_config = self._load_yaml("config.yaml")
        self.strategies_config = self._load_yaml("strategies.yaml")

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        """Load YAML configuration file"""
        config_path = self.project_root / self.config_dir / filename
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r") as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key in dot notation (e.g., 'trading.candle_limit')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self.main_config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_strategy_config(self, strategy_name: str) -> Dict[str, Any]:
        """Get configuration for a specific strategy"""
        return self.strategies_config.get(strategy_name, {})

    def get_env(self, key: str, default: Any = None) -> Any:
        """Get environment variable"""
        return os.getenv(key, default)

    # OKX Configuration
    @property
    def demo_mode(self) -> bool:
        """Whether orders go to OKX simulated trading"""
        value = self.get_env("OKX_DEMO_MODE")
        if value is None:
            return bool(self.get("exchange.demo_mode", True))
        return value.strip().lower() in ("1", "true", "yes")

    def okx_credentials(self, demo: Optional[bool] = None) -> Dict[str, Optional[str]]:
        """
        Get OKX API credentials for a trading mode

        Demo mode falls back to the live keys when no demo keys are set.
        Live mode only ever uses the live keys.
        """
        if demo is None:
            demo = self.demo_mode

        live = {
            "api_key": self.get_env("OKX_API_KEY"),
            "secret_key": self.get_env("OKX_SECRET_KEY"),
            "passphrase": self.get_env("OKX_PASSPHRASE"),
        }
        if not demo:
            return live

        return {
            "api_key": self.get_env("OKX_DEMO_API_KEY") or live["api_key"],
            "secret_key": self.get_env("OKX_DEMO_SECRET_KEY") or live["secret_key"],
            "passphrase": self.get_env("OKX_DEMO_PASSPHRASE") or live["passphrase"],
        }

    @property
    def base_url(self) -> str:
        return self.get("exchange.base_url", "https://www.okx.com")

    @property
    def request_timeout(self) -> float:
        """Per-request timeout in seconds"""
        return float(self.get("exchange.request_timeout", 10))

    @property
    def min_request_interval(self) -> float:
        """Minimum seconds between exchange requests"""
        return float(self.get("exchange.min_request_interval", 0.1))

    @property
    def max_retries(self) -> int:
        return int(self.get("exchange.max_retries", 3))

    @property
    def retry_base_delay(self) -> float:
        return float(self.get("exchange.retry_base_delay", 1.0))

    # Trading Configuration
    @property
    def instruments(self) -> List[str]:
        """Get list of instruments to trade"""
        return list(self.get("trading.instruments", DEFAULT_INSTRUMENTS))

    @property
    def candle_timeframe(self) -> str:
        return self.get("trading.candle_timeframe", "1m")

    @property
    def candle_limit(self) -> int:
        return int(self.get("trading.candle_limit", 100))

    @property
    def pair_cooldown_seconds(self) -> float:
        """Minimum seconds between trades on one instrument"""
        return float(self.get("trading.pair_cooldown_seconds", 30))

    @property
    def instrument_delay(self) -> float:
        """Minimum seconds between instruments within a cycle"""
        return float(self.get("trading.instrument_delay", 0.2))

    @property
    def cycle_interval(self) -> float:
        """Seconds between scheduled cycles"""
        return float(self.get("trading.cycle_interval", 60))

    @property
    def default_margin(self) -> float:
        return float(self.get("trading.default_margin", 10))

    @property
    def default_leverage(self) -> float:
        return float(self.get("trading.default_leverage", 1))

    @property
    def max_leverage(self) -> float:
        return float(self.get("trading.max_leverage", 125))

    # State Configuration
    @property
    def max_logs(self) -> int:
        """Activity log capacity"""
        return int(self.get("state.max_logs", 100))

    @property
    def max_trades(self) -> int:
        """Trade history capacity"""
        return int(self.get("state.max_trades", 1000))

    @property
    def trade_config_file(self) -> Path:
        """Path of the persisted trade size/leverage settings"""
        return self.project_root / self.get("state.trade_config_file", ".trade-config.json")

    @property
    def logs_dir(self) -> Path:
        """Get logs directory path"""
        logs_path = self.project_root / "logs"
        logs_path.mkdir(parents=True, exist_ok=True)
        return logs_path

    # Logging Configuration
    @property
    def log_level(self) -> str:
        """Get log level"""
        return self.get_env("LOG_LEVEL", self.get("logging.level", "INFO"))

    def __repr__(self) -> str:
        return f"Config(demo={self.demo_mode}, instruments={len(self.instruments)})"


# Global configuration instance
_config = None


def get_config() -> Config:
    """Get global configuration instance (singleton)"""
    global _config
    if _config is None:
        _config = Config()
    return _config
