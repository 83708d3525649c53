"""
Broker configuration for the MetaTrader 5 terminal.

Credentials are read from environment variables so they never live in the
YAML settings file.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import os


@dataclass
class MT5Config:
    """MT5 terminal connection settings."""

    # Credentials (loaded from environment variables for security)
    login: Optional[int] = None
    password: str = ""
    server: str = ""

    # Terminal executable; None lets the package locate it
    terminal_path: Optional[str] = None

    # Connection settings
    timeout_ms: int = 60000

    @classmethod
    def from_env(cls) -> 'MT5Config':
        """
        Load configuration from environment variables.

        Environment variables:
        - MT5_LOGIN: Account number
        - MT5_PASSWORD: Account password
        - MT5_SERVER: Broker server name
        - MT5_PATH: Path to terminal64.exe (optional)
        """
        login = os.getenv('MT5_LOGIN', '')
        return cls(
            login=int(login) if login else None,
            password=os.getenv('MT5_PASSWORD', ''),
            server=os.getenv('MT5_SERVER', ''),
            terminal_path=os.getenv('MT5_PATH') or None,
        )

    @property
    def has_credentials(self) -> bool:
        return self.login is not None and bool(self.password) and bool(self.server)

    def initialize_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for mt5.initialize()."""
        kwargs: Dict[str, Any] = {'timeout': self.timeout_ms}
        if self.terminal_path:
            kwargs['path'] = self.terminal_path
        if self.has_credentials:
            kwargs['login'] = self.login
            kwargs['password'] = self.password
            kwargs['server'] = self.server
        return kwargs

    def validate(self) -> bool:
        """Validate that credentials are either complete or absent."""
        provided = [self.login is not None, bool(self.password), bool(self.server)]
        if any(provided) and not all(provided):
            raise ValueError("Incomplete MT5 credentials. Set MT5_LOGIN, MT5_PASSWORD and MT5_SERVER.")
        return True
