"""Runtime settings read from ``CONNECTFOUR_*`` environment variables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8787
    room_ttl_seconds: float = 10 * 60
    sweep_interval_seconds: float = 60.0
    ai_delay_seconds: float = 0.4
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("CONNECTFOUR_HOST", cls.host),
            port=int(env.get("CONNECTFOUR_PORT", cls.port)),
            room_ttl_seconds=float(
                env.get("CONNECTFOUR_ROOM_TTL_SECONDS", cls.room_ttl_seconds)
            ),
            sweep_interval_seconds=float(
                env.get("CONNECTFOUR_SWEEP_INTERVAL_SECONDS", cls.sweep_interval_seconds)
            ),
            ai_delay_seconds=float(
                env.get("CONNECTFOUR_AI_DELAY_SECONDS", cls.ai_delay_seconds)
            ),
            log_level=env.get("CONNECTFOUR_LOG_LEVEL", cls.log_level).upper(),
        )
