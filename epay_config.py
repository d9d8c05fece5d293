import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from epay_errors import (
    ConfigError,
    MSG_INVALID_API_URL,
    MSG_INVALID_KEY,
    MSG_INVALID_PID,
)
from payment_gateway import SIGN_TYPE_MD5

load_dotenv()

DEFAULT_TIMEOUT = 30  # 秒
DEFAULT_SIGN_TYPE = SIGN_TYPE_MD5


def _env_int(name: str, default: int = 0) -> int:
    try:
        return int(os.getenv(name, "") or default)
    except ValueError:
        return default


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


# demo server 回調地址
EPAY_NOTIFY_URL = os.getenv(
    "EPAY_NOTIFY_URL", "http://localhost:8000/notify"
)
EPAY_RETURN_URL = os.getenv("EPAY_RETURN_URL", "http://localhost:8000/return")


@dataclass(frozen=True)
class EPayConfig:
    """Merchant settings for one EPay account."""

    pid: int
    key: str = field(repr=False)
    api_base_url: str
    timeout: int = DEFAULT_TIMEOUT
    debug: bool = False

    def validate(self) -> None:
        if self.pid <= 0:
            raise ConfigError(MSG_INVALID_PID)
        if not self.key:
            raise ConfigError(MSG_INVALID_KEY)
        if not self.api_base_url:
            raise ConfigError(MSG_INVALID_API_URL)

    @property
    def api_base(self) -> str:
        return self.api_base_url.rstrip("/")

    @property
    def timeout_seconds(self) -> int:
        return self.timeout if self.timeout > 0 else DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "EPayConfig":
        """Read ``EPAY_*`` variables (``.env`` included) at call time."""
        return cls(
            pid=_env_int("EPAY_PID"),
            key=os.getenv("EPAY_KEY", ""),
            api_base_url=os.getenv("EPAY_API_URL", ""),
            timeout=_env_int("EPAY_TIMEOUT", DEFAULT_TIMEOUT),
            debug=_env_bool("EPAY_DEBUG"),
        )
