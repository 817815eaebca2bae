"""Webex chat notifications.

Posts markdown messages to the team room configured in the portal settings.
Notifications are best-effort: failures are logged, never raised.
"""

import logging
from datetime import datetime

import httpx

from ..core.config import Settings
from ..models import AppSettings
from .results import ActionResult

logger = logging.getLogger(__name__)


class WebexService:
    """Thin client for the Webex messages API (no SDK dependency)."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = settings.webex_api_base_url.rstrip("/")
        self._timeout = settings.webex_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @staticmethod
    def _is_configured(app_settings: AppSettings | None) -> bool:
        return bool(
            app_settings
            and app_settings.webex_enabled
            and app_settings.webex_bot_token
            and app_settings.webex_room_id
        )

    async def _post_message(self, app_settings: AppSettings, markdown: str) -> None:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._base_url}/messages",
                    headers={"Authorization": f"Bearer {app_settings.webex_bot_token}"},
                    json={"roomId": app_settings.webex_room_id, "markdown": markdown},
                )
            if response.is_error:
                logger.error(f"Webex API error {response.status_code}: {response.text}")
        except httpx.HTTPError as e:
            logger.error(f"Webex publish failed: {e}")

    async def notify_reminder_sent(
        self,
        app_settings: AppSettings | None,
        *,
        org_name: str,
        org_code: str,
        recipient: str,
        remaining_count: int,
        total_count: int,
        reminded_at: datetime,
    ) -> None:
        """Announce a sent reminder in the Webex room, if enabled."""
        if not self._is_configured(app_settings) or not app_settings.webex_notify_on_reminder:
            return

        await self._post_message(app_settings, "\n".join([
            "📧 **Relance envoyée**",
            f"- Organisation: **{org_name}** ({org_code})",
            f"- Destinataire: {recipient}",
            f"- Éléments restants: {remaining_count} / {total_count}",
            f"- Date: {reminded_at.isoformat()}",
        ]))

    async def validate_connection(self, app_settings: AppSettings | None) -> ActionResult:
        """Check that the bot token can see the configured room."""
        if not app_settings or not app_settings.webex_bot_token or not app_settings.webex_room_id:
            return ActionResult(False, "Configuration Webex incomplète.")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._base_url}/rooms/{app_settings.webex_room_id}",
                    headers={"Authorization": f"Bearer {app_settings.webex_bot_token}"},
                )
        except httpx.HTTPError as e:
            return ActionResult(False, f"Erreur Webex: {e}")

        if response.is_error:
            return ActionResult(False, f"Échec Webex ({response.status_code}): {response.text}")
        return ActionResult(True, "Connexion Webex valide.")
