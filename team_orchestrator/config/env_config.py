"""
Environment configuration - Load settings from .env files
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv


class EnvConfig:
    """
    Load and manage configuration from environment variables and .env files.

    Supports multiple sources with priority:
    1. Environment variables (highest priority, never overwritten)
    2. .env file in current/specified directory or up to 3 parents
    """

    @staticmethod
    def find_env_file(start: Optional[Path] = None) -> Optional[Path]:
        """Search the current dir and up to 3 parent levels for a .env file."""
        current = (start or Path.cwd()).resolve()
        for _ in range(4):
            potential_path = current / ".env"
            if potential_path.exists():
                return potential_path
            if current.parent == current:  # Stop at filesystem root
                break
            current = current.parent
        return None

    @staticmethod
    def load_env_file(path: Optional[str] = None) -> bool:
        """
        Load environment variables from .env file.

        Args:
            path: Path to .env file (default: search current dir and parents)

        Returns:
            True if file was loaded, False otherwise
        """
        env_path = Path(path) if path else EnvConfig.find_env_file()

        if env_path and env_path.exists():
            load_dotenv(env_path, override=False)
            return True

        return False

    @staticmethod
    def get(key: str, default: Optional[str] = None) -> Optional[str]:
        """Get environment variable with optional default."""
        return os.getenv(key, default)

    @staticmethod
    def get_bool(key: str, default: bool = False) -> bool:
        """Get boolean environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    @staticmethod
    def get_int(key: str, default: int = 0) -> int:
        """Get integer environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def get_float(key: str, default: float = 0.0) -> float:
        """Get float environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def get_json(key: str, default: Optional[Any] = None) -> Optional[Any]:
        """Get JSON environment variable."""
        value = os.getenv(key)
        if not value:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default

    @staticmethod
    def check_required(*keys: str) -> Dict[str, bool]:
        """
        Check which of the given environment variables are set.

        Returns:
            Mapping of key -> whether it is set
        """
        return {key: bool(os.getenv(key)) for key in keys}
