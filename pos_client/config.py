import os
import socket
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class ClientSettings:
    base_url: str = "http://localhost:8000"
    timeout: float = 30.0
    store_path: str = "pos_client.sqlite3"
    device_id: str = ""

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ClientSettings":
        """Read POS_* variables, after loading a .env file if there is one."""
        load_dotenv(env_file)
        return cls(
            base_url=os.getenv("POS_SYNC_BASE_URL", cls.base_url).rstrip("/"),
            timeout=float(os.getenv("POS_SYNC_TIMEOUT", str(cls.timeout))),
            store_path=os.getenv("POS_STORE_PATH", cls.store_path),
            device_id=os.getenv("POS_DEVICE_ID") or socket.gethostname(),
        )
