"""
meshreach Configuration

Connection settings, query window and generation options, read from the
environment and overridden by command-line flags.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional
import os

from meshreach.policy.generator import DedupScope


DATE_FORMAT = "%Y-%m-%d"
DEFAULT_WINDOW_DAYS = 5


class ConfigError(Exception):
    """Raised when the configuration is incomplete or invalid."""
    pass


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date."""
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise ConfigError(f"failed to parse date {value!r}, expected YYYY-MM-DD: {e}") from e


def _default_start() -> date:
    return date.today() - timedelta(days=DEFAULT_WINDOW_DAYS)


@dataclass
class ReachabilityConfig:
    """Runtime configuration for one generation run."""

    # TSB connection
    server: str = ""
    username: str = ""
    password: str = ""
    org: str = "tetrate"
    insecure: bool = False  # Skip certificate verification
    timeout: int = 30

    # Topology window
    start: date = field(default_factory=_default_start)
    end: date = field(default_factory=date.today)

    # Generation
    dedup_scope: DedupScope = DedupScope.SHARED

    # Output
    debug: bool = False
    verbose: bool = True  # Dump fetched topology/services in debug logs
    output: Optional[str] = None  # File path; stdout when unset

    @classmethod
    def from_env(cls) -> "ReachabilityConfig":
        """Create config from environment variables."""
        config = cls()

        if server := os.environ.get("MESHREACH_SERVER"):
            config.server = server
        if username := os.environ.get("MESHREACH_USERNAME"):
            config.username = username
        if password := os.environ.get("MESHREACH_PASSWORD"):
            config.password = password
        if org := os.environ.get("MESHREACH_ORG"):
            config.org = org
        if timeout := os.environ.get("MESHREACH_TIMEOUT"):
            try:
                config.timeout = int(timeout)
            except ValueError as e:
                raise ConfigError(f"MESHREACH_TIMEOUT must be an integer, got {timeout!r}") from e
        if dedup_scope := os.environ.get("MESHREACH_DEDUP_SCOPE"):
            try:
                config.dedup_scope = DedupScope(dedup_scope)
            except ValueError as e:
                raise ConfigError(f"unknown MESHREACH_DEDUP_SCOPE {dedup_scope!r}") from e

        config.insecure = os.environ.get("MESHREACH_INSECURE", "false").lower() == "true"

        return config

    def validate(self) -> "ReachabilityConfig":
        """
        Normalize and check the configuration before any request is made.

        Raises:
            ConfigError: If required settings are missing or inconsistent
        """
        if not self.server:
            raise ConfigError(
                "server address (-s or --server) can't be empty, need an address "
                "like 'tsb.yourcorp.com' or an IP like '127.0.1.10'"
            )
        # Requests are always sent over https
        for prefix in ("https://", "http://"):
            if self.server.startswith(prefix):
                self.server = self.server[len(prefix):]
        self.server = self.server.rstrip("/")

        if not self.username or not self.password:
            raise ConfigError(
                "credentials (-u/--http-auth-user and -p/--http-auth-password) are required"
            )
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.start > self.end:
            raise ConfigError(
                f"start {self.start.strftime(DATE_FORMAT)} is after end {self.end.strftime(DATE_FORMAT)}"
            )
        return self
