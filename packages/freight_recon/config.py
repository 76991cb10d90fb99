"""Runtime settings resolved from the environment.

Entrypoints load a local ``.env`` (``python-dotenv``, ``override=False``)
before calling :func:`load_settings`. Confidence thresholds and the balance
tolerance are deliberately *not* settings; they live as constants in
``freight_recon.status`` because the approval workflow depends on them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ReconSettings:
    database_url: str | None
    log_level: str | None
    actor_email: str | None


def load_settings() -> ReconSettings:
    def _env(name: str) -> str | None:
        val = os.getenv(name)
        if val is None:
            return None
        val = val.strip()
        return val or None

    return ReconSettings(
        database_url=_env("DATABASE_URL"),
        log_level=_env("FREIGHT_RECON_LOG_LEVEL"),
        actor_email=_env("FREIGHT_RECON_ACTOR"),
    )


__all__ = ["ReconSettings", "load_settings"]
