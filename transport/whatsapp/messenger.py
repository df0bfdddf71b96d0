"""
WhatsApp messenger: gateway send plus message-log bookkeeping.

The only path the commerce core uses to message customers. Each
successful send writes exactly one outbound record carrying the
gateway-assigned whatsappId, which later status callbacks patch.
"""

import logging
from typing import Any, Optional, Sequence

from .message_log import MessageLog
from .schemas import WhatsAppMessageResponse
from .sender import MessageGateway

logger = logging.getLogger(__name__)


class WhatsAppMessenger:
    """Sends templates and logs them."""

    def __init__(self, gateway: MessageGateway, message_log: MessageLog):
        self.gateway = gateway
        self.message_log = message_log

    async def send_template(
        self,
        to: str,
        template_name: str,
        parameters: Optional[Sequence[Any]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        language: Optional[str] = None,
    ) -> WhatsAppMessageResponse:
        """
        Send a template and record it.

        Raises:
            WhatsAppSenderError: If the gateway send fails (nothing is logged)
        """
        response = await self.gateway.send_template(
            to,
            template_name,
            parameters=parameters,
            components=components,
            language=language,
        )

        # The message went out; a failed log write must not turn that into an error
        try:
            await self.message_log.record_outbound(to, template_name, response.message_id)
        except Exception as e:
            logger.error(
                f"Error logging outbound message: {e}",
                exc_info=True,
                extra={"recipient": to, "template": template_name},
            )

        return response
