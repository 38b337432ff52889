"""
config.py
~~~~~~~~~

Runtime settings read from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    """
    Server and engine settings.

    Attributes:
        log_level: Root log level name (LOG_LEVEL)
        production: True when FLASK_ENV is 'production'
        port: HTTP port (PORT)
        db_path: SQLite file for saved networks (NNSIM_DB_PATH)
        cleanup_days: Saved networks older than this are purged by the
            background cleanup task (NNSIM_CLEANUP_DAYS)
        max_resolution: Upper bound on grid sampling resolution accepted
            by the API (NNSIM_MAX_RESOLUTION)
        async_mode: Flask-SocketIO async mode (NNSIM_ASYNC_MODE)
        default_layers: Topology used when a request names none
        default_learning_rate: Learning rate used when a request names none
    """

    log_level: str = 'INFO'
    production: bool = False
    port: int = 8000
    db_path: str = 'models/networks.db'
    cleanup_days: int = 2
    max_resolution: int = 100
    async_mode: str = 'gevent'
    default_layers: List[int] = field(default_factory=lambda: [2, 4, 3, 1])
    default_learning_rate: float = 0.1

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from ``env`` (``os.environ`` by default)."""
        if env is None:
            env = os.environ
        return cls(
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
            production=env.get('FLASK_ENV') == 'production',
            port=_env_int(env, 'PORT', 8000),
            db_path=env.get('NNSIM_DB_PATH', 'models/networks.db'),
            cleanup_days=_env_int(env, 'NNSIM_CLEANUP_DAYS', 2),
            max_resolution=_env_int(env, 'NNSIM_MAX_RESOLUTION', 100),
            async_mode=env.get('NNSIM_ASYNC_MODE', 'gevent'),
        )
