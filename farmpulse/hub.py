# farmpulse/hub.py
"""
Long-lived WebSocket sessions: registration, per-session message handling and
fan-out of events to dashboards.

All registry mutations happen on the event loop thread; handlers for one
session run one message at a time.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import pydantic
from fastapi import WebSocket

from .auth import AuthGate
from .errors import ValidationError
from .pipeline import IngestPipeline
from .schemas import SensorDataMessage, StartSimulationMessage, StopSimulationMessage

logger = logging.getLogger(__name__)

DASHBOARD = "dashboard"
DEVICE = "device"
SIMULATOR = "simulator"


@dataclass(eq=False)
class Session:
    id: str
    role: str
    websocket: Any
    device_id: Optional[str] = None
    animal_id: Optional[str] = None  # paired animal of a device session
    monitoring_animal_id: Optional[str] = None  # dashboard filter

    @property
    def is_dashboard(self) -> bool:
        return self.role == DASHBOARD

    async def send(self, message: Dict[str, Any]) -> bool:
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as exc:
            logger.debug("send to session %s failed: %s", self.id, exc)
            return False


class BroadcastRouter:
    """Delivers events to dashboard sessions held by a ConnectionHub."""

    def __init__(self, hub: "ConnectionHub"):
        self.hub = hub

    @staticmethod
    def wants(session: Session, animal_id: Optional[str]) -> bool:
        if not session.is_dashboard:
            return False
        return session.monitoring_animal_id is None or session.monitoring_animal_id == animal_id

    async def _deliver(self, targets: List[Session], event: Dict[str, Any]) -> int:
        dead = []
        delivered = 0
        for session in targets:
            if await session.send(event):
                delivered += 1
            else:
                dead.append(session)
        for session in dead:
            self.hub.disconnect(session)
        return delivered

    async def publish(self, animal_id: Optional[str], event: Dict[str, Any]) -> int:
        targets = [s for s in self.hub.snapshot() if self.wants(s, animal_id)]
        return await self._deliver(targets, event)

    async def publish_global(self, event: Dict[str, Any]) -> int:
        targets = [s for s in self.hub.snapshot() if s.is_dashboard]
        return await self._deliver(targets, event)


class ConnectionHub:
    def __init__(self, auth: AuthGate, pipeline: Optional[IngestPipeline] = None, simulations=None):
        self.auth = auth
        self.pipeline = pipeline
        self.simulations = simulations
        self.sessions: Dict[str, Session] = {}
        self.router = BroadcastRouter(self)
        self._handlers = {
            "sensorData": self._on_sensor_data,
            "startSimulation": self._on_start_simulation,
            "stopSimulation": self._on_stop_simulation,
            "getSimulationStatus": self._on_simulation_status,
        }

    # ------------------------------------------------------------------
    # registry
    # ------------------------------------------------------------------
    def snapshot(self) -> List[Session]:
        return list(self.sessions.values())

    def register(self, session: Session) -> None:
        key = session.device_id if session.role in (DEVICE, SIMULATOR) else session.id
        self.sessions[key] = session

    def disconnect(self, session: Session) -> None:
        for key, registered in list(self.sessions.items()):
            if registered is session:
                del self.sessions[key]
                logger.info("%s session %s disconnected", session.role, session.device_id or session.id)

    def simulation_status(self) -> Dict[str, Any]:
        active = self.simulations.active() if self.simulations is not None else []
        return {"type": "simulationStatus", "simulations": active}

    # ------------------------------------------------------------------
    # connect
    # ------------------------------------------------------------------
    async def connect(self, websocket: WebSocket, params: Mapping[str, str]) -> Optional[Session]:
        await websocket.accept()
        role = params.get("type") or DEVICE
        logger.info("WebSocket connection, client type: %s, device: %s", role, params.get("deviceId") or "N/A")

        if role == DASHBOARD:
            session = Session(id=uuid.uuid4().hex, role=DASHBOARD, websocket=websocket,
                              monitoring_animal_id=params.get("animalId") or None)
            self.register(session)
            await session.send({"type": "connection", "status": "connected", "sessionId": session.id})
            await session.send(self.simulation_status())
            return session

        if role not in (DEVICE, SIMULATOR):
            await self._reject(websocket, f"Unknown client type: {role}")
            return None

        device_id = params.get("deviceId")
        api_key = params.get("apiKey")
        if not device_id or not api_key:
            await self._reject(websocket, "Missing deviceId or apiKey")
            return None

        result = await self.auth.authenticate(device_id, api_key)
        if not result.valid:
            logger.info("Authentication failed for device %s", device_id)
            await self._reject(websocket, "Authentication failed")
            return None

        session = Session(id=uuid.uuid4().hex, role=role, websocket=websocket,
                          device_id=device_id, animal_id=result.animal_id)
        self.register(session)
        logger.info("Device connected: %s", device_id)
        await session.send({
            "type": "connection",
            "status": "connected",
            "deviceId": device_id,
            "animalId": result.animal_id,
        })
        return session

    @staticmethod
    async def _reject(websocket: WebSocket, message: str) -> None:
        try:
            await websocket.send_json({"type": "error", "message": message})
            await websocket.close()
        except Exception as exc:
            logger.debug("rejecting connection failed: %s", exc)

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------
    async def handle_message(self, session: Session, raw: str) -> None:
        """Handle one inbound message. Errors become ``error`` replies; the
        session stays open."""
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValidationError("Message must be a JSON object")
            handler = self._handlers.get(data.get("type"))
            if handler is None:
                logger.debug("Ignoring message of type %r from %s", data.get("type"), session.id)
                return
            await handler(session, data)
        except ValidationError as exc:
            await session.send({"type": "error", "message": exc.message})
        except Exception:
            logger.exception("Error processing WebSocket message from %s", session.device_id or session.id)
            await session.send({"type": "error", "message": "Error processing message"})

    async def _on_sensor_data(self, session: Session, data: Dict[str, Any]) -> None:
        try:
            msg = SensorDataMessage.model_validate(data)
        except pydantic.ValidationError:
            raise ValidationError("Invalid sensor data: readings must be a list of {sensorType, values} objects")

        device_id = msg.deviceId or session.device_id
        if not device_id:
            raise ValidationError("Invalid sensor data: deviceId is required")
        batch = msg.to_batch(device_id, msg.animalId or session.animal_id)

        try:
            result = await self.pipeline.ingest(batch)
        except ValidationError as exc:
            raise ValidationError(f"Invalid sensor data: {exc.message}", exc.sensor_type, exc.field)

        await session.send({
            "type": "dataReceived",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "anomalyDetected": result.anomaly_detected,
            "fetalHealthData": result.fetal_health_data,
        })

    async def _on_start_simulation(self, session: Session, data: Dict[str, Any]) -> None:
        try:
            msg = StartSimulationMessage.model_validate(data)
        except pydantic.ValidationError:
            raise ValidationError("startSimulation requires an animalId and a positive interval")
        self.simulations.start(msg.animalId, msg.interval, msg.scenario)
        await session.send({"type": "simulationStarted", "animalId": msg.animalId})
        await self.router.publish_global(self.simulation_status())

    async def _on_stop_simulation(self, session: Session, data: Dict[str, Any]) -> None:
        try:
            msg = StopSimulationMessage.model_validate(data)
        except pydantic.ValidationError:
            raise ValidationError("stopSimulation requires an animalId or all")
        if msg.animalId:
            self.simulations.stop(msg.animalId)
            await session.send({"type": "simulationStopped", "animalId": msg.animalId})
        elif msg.all:
            self.simulations.stop_all()
            await session.send({"type": "simulationStopped", "all": True})
        await self.router.publish_global(self.simulation_status())

    async def _on_simulation_status(self, session: Session, data: Dict[str, Any]) -> None:
        await session.send(self.simulation_status())
