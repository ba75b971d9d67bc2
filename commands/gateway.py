"""
Device Gateway Client.

============================================================
PURPOSE
============================================================
Best-effort forwarding of commands to the device gateway's
remote-control endpoint.

Only command types with a gateway equivalent are forwarded:

    ICE_CREAM_SET_MODE                -> maintenance_mode
    UNIVERSAL_ENABLE_MAINTENANCE_MODE -> maintenance_mode
    UNIVERSAL_EMERGENCY_STOP          -> stop

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from commands.models import CommandType
from core.config import CommandConfig
from core.exceptions import GatewayError


logger = logging.getLogger(__name__)


GATEWAY_COMMANDS: Dict[CommandType, str] = {
    CommandType.ICE_CREAM_SET_MODE: "maintenance_mode",
    CommandType.UNIVERSAL_ENABLE_MAINTENANCE_MODE: "maintenance_mode",
    CommandType.UNIVERSAL_EMERGENCY_STOP: "stop",
}


class DeviceGatewayClient:
    """
    HTTP client for the device gateway.
    """

    def __init__(self, config: CommandConfig):
        self._base_url = (config.gateway_url or "").rstrip("/")
        self._timeout = config.gateway_timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

        if not self._base_url:
            logger.info("Device gateway not configured - commands stay queued only")

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    @staticmethod
    def gateway_command(command_type: CommandType) -> Optional[str]:
        return GATEWAY_COMMANDS.get(command_type)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def forward(
        self,
        machine_id: str,
        command_type: CommandType,
        parameters: Dict[str, Any],
    ) -> bool:
        """
        Forward a command if the gateway understands it.

        Returns:
            True if forwarded, False if not applicable

        Raises:
            GatewayError: Request failed or the gateway rejected it
        """
        action = self.gateway_command(command_type)
        if action is None or not self.is_configured:
            return False

        payload = {
            "machineId": machine_id,
            "command": action,
            "parameters": parameters,
        }
        url = f"{self._base_url}/remote-control"

        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    logger.info(f"Command {command_type.value} forwarded to gateway for {machine_id}")
                    return True
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GatewayError(f"Gateway request failed: {e}", cause=e) from e

        raise GatewayError(
            f"Gateway error: {response.status} - {body}",
            context={"status": response.status, "machine_id": machine_id},
        )
