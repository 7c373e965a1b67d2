"""
Device registry: which devices report for which entity, and whether they are reachable.

This is the connectivity input to health aggregation. It never looks at
faults; it only answers "has every device of this entity gone dark?".
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from faultwatch.domain.models import Device, DeviceStatus, SensorReading, utc_now

logger = structlog.get_logger(__name__)


class DeviceRegistry:
    """Device → entity mapping with reachability state."""

    def __init__(
        self,
        offline_after_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.offline_after_seconds = offline_after_seconds
        self.clock = clock
        self._devices: dict[str, Device] = {}
        self.logger = logger.bind(component="device_registry")

    def register(
        self, device_id: str, entity_id: str, status: DeviceStatus = DeviceStatus.ONLINE
    ) -> Device:
        device = Device(id=device_id, entity_id=entity_id, status=status, last_seen=self.clock())
        self._devices[device_id] = device
        self.logger.info("device_registered", device_id=device_id, entity_id=entity_id)
        return device

    def touch(self, reading: SensorReading) -> Device:
        """Record that a reading arrived; readings without a device id count as the entity's own."""
        device_id = reading.device_id or reading.entity_id
        existing = self._devices.get(device_id)

        if existing is None:
            return self.register(device_id, reading.entity_id)

        if existing.entity_id != reading.entity_id:
            self.logger.warning(
                "device_remapped",
                device_id=device_id,
                previous_entity_id=existing.entity_id,
                entity_id=reading.entity_id,
            )

        device = existing.model_copy(
            update={
                "entity_id": reading.entity_id,
                "status": DeviceStatus.ONLINE,
                "last_seen": self.clock(),
            }
        )
        self._devices[device_id] = device
        return device

    def set_status(self, device_id: str, status: DeviceStatus) -> Device | None:
        device = self._devices.get(device_id)
        if device is None:
            self.logger.warning("device_status_unknown_device", device_id=device_id)
            return None

        updated = device.model_copy(update={"status": status})
        self._devices[device_id] = updated
        if status != device.status:
            self.logger.info(
                "device_status_changed",
                device_id=device_id,
                previous=device.status.value,
                status=status.value,
            )
        return updated

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def devices_for(self, entity_id: str) -> list[Device]:
        return [device for device in self._devices.values() if device.entity_id == entity_id]

    def entities(self) -> list[str]:
        """Entity ids with at least one device, in first-registration order."""
        return list(dict.fromkeys(device.entity_id for device in self._devices.values()))

    def is_reachable(self, device: Device, now: datetime | None = None) -> bool:
        if device.status is not DeviceStatus.ONLINE:
            return False
        if self.offline_after_seconds is None:
            return True
        silence = ((now or self.clock()) - device.last_seen).total_seconds()
        return silence < self.offline_after_seconds

    def is_offline(self, entity_id: str, now: datetime | None = None) -> bool:
        """True when the entity has devices and none of them is reachable."""
        devices = self.devices_for(entity_id)
        if not devices:
            return False
        now = now or self.clock()
        return not any(self.is_reachable(device, now) for device in devices)

    def __len__(self) -> int:
        return len(self._devices)
