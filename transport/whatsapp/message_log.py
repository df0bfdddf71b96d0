"""
WhatsApp message log.

Every inbound and outbound message becomes one record in the
whatsapp_messages collection. Records are append-only; the only
mutation is a delivery-status patch, matched by whatsappId.
"""

import json
import logging
from datetime import datetime
from typing import Optional

from commerce.models import utc_now
from commerce.phone import DEFAULT_COUNTRY_CODE, normalize_phone
from storage import DocumentStore

from .schemas import MESSAGES, InboundMessage, MessageRecord, StatusUpdate

logger = logging.getLogger(__name__)


class MessageLog:
    """Writes and patches whatsapp_messages records."""

    def __init__(self, store: DocumentStore, country_code: str = DEFAULT_COUNTRY_CODE):
        self.store = store
        self.country_code = country_code

    async def record_inbound(self, message: InboundMessage) -> str:
        """Persist an inbound message verbatim. Returns the record id."""
        record = MessageRecord(
            phone=message.sender,
            phone_normalized=message.phone_normalized,
            direction="inbound",
            type=message.type,
            body=message.body,
            payload=message.payload,
            whatsapp_id=message.message_id,
            raw=json.dumps(message.raw, default=str),
            timestamp=message.timestamp or utc_now(),
        )
        record_id = await self.store.add(MESSAGES, record.to_document())
        logger.debug(
            f"Inbound message logged from {message.sender}",
            extra={"message_id": message.message_id, "record_id": record_id},
        )
        return record_id

    async def record_outbound(
        self,
        to: str,
        template_name: str,
        whatsapp_id: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Persist one outbound template send. Returns the record id."""
        record = MessageRecord(
            phone=to,
            phone_normalized=normalize_phone(to, self.country_code),
            direction="outbound",
            type="template",
            body=f"Template: {template_name}",
            template_name=template_name,
            status="sent",
            whatsapp_id=whatsapp_id,
            timestamp=timestamp or utc_now(),
        )
        return await self.store.add(MESSAGES, record.to_document())

    async def apply_status(self, update: StatusUpdate) -> bool:
        """
        Patch the outbound record matching update.whatsapp_id.

        Returns:
            True if a record was updated, False if no record matched
        """
        docs = await self.store.query(
            MESSAGES,
            [("whatsappId", "==", update.whatsapp_id), ("direction", "==", "outbound")],
            limit=1,
        )
        if not docs:
            logger.info(
                f"Status '{update.status}' for unknown message {update.whatsapp_id}, ignoring",
                extra={"whatsapp_id": update.whatsapp_id},
            )
            return False

        patch = {
            "status": update.status,
            "statusUpdatedAt": update.timestamp or utc_now(),
        }
        if update.errors:
            patch["errors"] = update.errors

        await self.store.update(MESSAGES, docs[0].id, patch)
        logger.debug(
            f"Message {update.whatsapp_id} marked {update.status}",
            extra={"whatsapp_id": update.whatsapp_id, "record_id": docs[0].id},
        )
        return True
