"""Trade config persistence. Saves/loads margin and leverage to JSON.

Lets the configured trade size and leverage survive an engine restart.
"""
import json
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Optional

from loguru import logger


class TradeConfigFile:
    """Persists the trade config to disk."""

    def __init__(self, path: str = ".trade-config.json"):
        self.path = Path(path)

    def save(self, config: Dict):
        """Save trade config to JSON. Failures are logged, not raised."""
        serializable = {k: v for k, v in config.items() if isinstance(v, (int, float, str))}
        serializable['saved_at'] = datetime.now(timezone.utc).isoformat()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(serializable, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save trade config to {self.path}: {e}")
            return

        logger.info(f"Saved trade config: {config.get('margin')} USDT @ {config.get('leverage')}x")

    def load(self) -> Optional[Dict]:
        """Load trade config from JSON. Returns None if missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load trade config from {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Ignoring malformed trade config in {self.path}")
            return None
        return data
