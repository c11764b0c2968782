"""
Configuration Module

Harness settings read from the environment (and an optional .env file).
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel

from models import CollisionPolicy, StopTimeoutPolicy

ENV_PREFIX = "HARNESS_"


class HarnessSettings(BaseModel):
    host_ip: str = "0.0.0.0"
    stop_timeout: int = 10  # seconds given to a graceful stop
    kill_confirm_timeout: float = 5.0  # seconds to wait for a kill to take effect
    poll_interval: float = 0.1
    collision_policy: CollisionPolicy = CollisionPolicy.DESTROY
    stop_timeout_policy: StopTimeoutPolicy = StopTimeoutPolicy.SUPPRESS_LATE_ERRORS
    docker_timeout: int = 120  # docker API client timeout
    log_level: str = "INFO"


def load_settings(**overrides) -> HarnessSettings:
    """Build settings from HARNESS_* environment variables, then apply overrides"""
    load_dotenv()

    values = {}
    for field in HarnessSettings.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{field.upper()}")
        if raw is not None and raw != "":
            values[field] = raw
    values.update(overrides)
    return HarnessSettings(**values)


_default_settings = None


def get_settings() -> HarnessSettings:
    """Process-wide settings, loaded from the environment on first use"""
    global _default_settings
    if _default_settings is None:
        _default_settings = load_settings()
    return _default_settings


def reset_settings():
    """Forget the cached settings so the next get_settings() reloads them"""
    global _default_settings
    _default_settings = None
