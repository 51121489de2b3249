"""Input device enumeration and access control through xinput."""
import re

from loguru import logger

from .commands import CommandExecutor, XINPUT_CMD
from .types import CommandError, Device, DeviceClass

logger = logger.bind(module="lockcycle.devices")

SLAVE_KEYBOARD = "slave  keyboard"
WIRED_KEYBOARD = "wired keyboard"
SLAVE_POINTER = "slave  pointer"
MOUSE = "mouse"

_ID_RE = re.compile(r"id=(\d+)")


def _matches(line: str, device_class: DeviceClass) -> bool:
    if device_class == DeviceClass.KEYBOARD:
        return SLAVE_KEYBOARD in line and WIRED_KEYBOARD in line
    return SLAVE_POINTER in line and MOUSE in line.lower()


def parse_device_ids(listing: str, device_class: DeviceClass) -> list[int]:
    """Extract ids of one device class from `xinput list` output.

    Ids are returned in order of appearance.
    """
    ids = []
    for line in listing.splitlines():
        if not _matches(line, device_class):
            continue
        match = _ID_RE.search(line)
        if match:
            ids.append(int(match.group(1)))
    return ids


class DeviceEnumerator:
    """Queries the device listing once per class on every call."""

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    async def device_ids(self, device_class: DeviceClass) -> list[int]:
        try:
            listing = await self.executor.output(XINPUT_CMD, ["list"])
        except CommandError as e:
            logger.error(f"Error getting {device_class.value} IDs: {e}")
            return []
        return parse_device_ids(listing, device_class)

    async def mouse_ids(self) -> list[int]:
        return await self.device_ids(DeviceClass.POINTER)

    async def keyboard_ids(self) -> list[int]:
        return await self.device_ids(DeviceClass.KEYBOARD)

    async def enumerate(self) -> list[Device]:
        """Mice first, then keyboards."""
        devices = [Device(i, DeviceClass.POINTER) for i in await self.mouse_ids()]
        devices.extend(Device(i, DeviceClass.KEYBOARD) for i in await self.keyboard_ids())
        return devices


class InputAccessController:
    """Best-effort enable/disable of input devices."""

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    async def _toggle(self, action: str, devices: list[Device]) -> None:
        for device in devices:
            try:
                await self.executor.run(XINPUT_CMD, [action, str(device.id)])
            except CommandError as e:
                logger.debug(f"Ignoring failure to {action} device {device.id}: {e}")

    async def disable(self, devices: list[Device]) -> None:
        await self._toggle("disable", devices)

    async def enable(self, devices: list[Device]) -> None:
        await self._toggle("enable", devices)
