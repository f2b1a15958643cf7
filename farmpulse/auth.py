# farmpulse/auth.py
import hmac
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .devices import DeviceStore
from .errors import AuthError, NotFoundError
from .store import run_db

logger = logging.getLogger(__name__)

ANONYMOUS_DEVICE_ID = "SIMULATED"


@dataclass
class AuthResult:
    valid: bool
    device_id: Optional[str] = None
    animal_id: Optional[str] = None
    sensor_types: List[str] = field(default_factory=list)


class AuthGate:
    """Device credential checks for sessions and the REST ingestion route."""

    def __init__(self, devices: DeviceStore, static_key: Optional[str] = None):
        self.devices = devices
        self.static_key = static_key

    def _static_match(self, presented_key: str) -> bool:
        if not self.static_key or not presented_key:
            return False
        return hmac.compare_digest(self.static_key.encode("utf-8"), presented_key.encode("utf-8"))

    async def require_device(self, device_id: Optional[str], presented_key: Optional[str]) -> AuthResult:
        """Look up and verify a registered device. Raises AuthError or NotFoundError."""
        if not device_id or not presented_key:
            raise AuthError("Missing authentication credentials")
        device = await run_db(self.devices.get, device_id)
        if device is None:
            raise NotFoundError("Device not found")
        if not await run_db(self.devices.verify_key, device_id, presented_key):
            raise AuthError("Invalid API key")
        await run_db(self.devices.touch_last_connected, device_id)
        return AuthResult(True, device.device_id, device.animal_id, list(device.sensor_types))

    async def authenticate(self, device_id: Optional[str], presented_key: Optional[str]) -> AuthResult:
        """Session auth: any failure collapses to ``valid=False`` with no detail."""
        if self._static_match(presented_key):
            return AuthResult(True, device_id or ANONYMOUS_DEVICE_ID)
        try:
            return await self.require_device(device_id, presented_key)
        except (AuthError, NotFoundError):
            return AuthResult(False)
        except Exception:
            logger.exception("API key validation error for device %s", device_id)
            return AuthResult(False)
