# farmpulse/routers/sensors.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..auth import AuthResult
from ..errors import FarmPulseError, InternalError, ValidationError
from ..schemas import SensorDataIn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sensors"])


async def authenticated_device(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    x_device_id: Optional[str] = Header(default=None),
) -> AuthResult:
    return await request.app.state.services.auth.require_device(x_device_id, x_api_key)


@router.post("/sensor-data")
async def receive_sensor_data(payload: SensorDataIn, request: Request,
                              device: AuthResult = Depends(authenticated_device)):
    """Ingest one batch from a device that does not keep a WebSocket open."""
    pipeline = request.app.state.services.pipeline
    batch = payload.to_batch(device.device_id, device.animal_id)
    try:
        result = await pipeline.ingest(batch)
    except ValidationError as exc:
        raise ValidationError(f"Invalid sensor data: {exc.message}", exc.sensor_type, exc.field)
    except FarmPulseError:
        raise
    except Exception:
        logger.exception("Error processing sensor data from %s", device.device_id)
        raise InternalError("Error processing sensor data")

    return {
        "success": True,
        "message": "Sensor data received and stored",
        "anomalyDetected": result.anomaly_detected,
        "fetalHealthData": result.fetal_health_data,
    }
