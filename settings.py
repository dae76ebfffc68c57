"""
Process configuration.

Values come from the environment, after a local ``.env`` file (if any) has
been loaded into it.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from camera.models import AcquisitionMode

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    photos_dir: Path = Path("./session")
    gphoto2_path: str = "gphoto2"
    log_level: str = "info"
    acquisition_mode: AcquisitionMode = AcquisitionMode.TETHERED
    poll_interval: float = 2.0
    reconnect_delay: float = 3.0
    presence_timeout: float = 5.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        log_level = environ.get("LOG_LEVEL", cls.log_level).strip().lower()
        if log_level not in LOG_LEVELS:
            raise SettingsError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)} (got {log_level!r})")

        mode = environ.get("ACQUISITION_MODE", cls.acquisition_mode.value).strip().lower()
        try:
            acquisition_mode = AcquisitionMode(mode)
        except ValueError:
            raise SettingsError(f"ACQUISITION_MODE must be 'tethered' or 'poll' (got {mode!r})") from None

        return cls(
            port=_number(environ, "PORT", cls.port, int),
            photos_dir=Path(environ.get("PHOTOS_DIR", str(cls.photos_dir))),
            gphoto2_path=environ.get("GPHOTO2_PATH", cls.gphoto2_path),
            log_level=log_level,
            acquisition_mode=acquisition_mode,
            poll_interval=_number(environ, "POLL_INTERVAL", cls.poll_interval, float),
            reconnect_delay=_number(environ, "RECONNECT_DELAY", cls.reconnect_delay, float),
            presence_timeout=_number(environ, "PRESENCE_TIMEOUT", cls.presence_timeout, float),
        )


def _number(environ: Mapping[str, str], name: str, default, kind):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = kind(raw)
    except ValueError:
        raise SettingsError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise SettingsError(f"{name} must be positive (got {raw!r})")
    return value
