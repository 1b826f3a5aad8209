# receipt_agent/services/webhook_handler.py
import logging
from typing import Any, Optional

from receipt_agent.models.schemas import (
    WHATSAPP_OBJECT,
    InboundMessage,
    MessageKind,
    TransactionCreate,
    UserContext,
    WebhookEnvelope,
)
from receipt_agent.services.ai_agent import AIAnalysisAgent
from receipt_agent.services.database_service import DatabaseService
from receipt_agent.services.minio_client import MinioClient
from receipt_agent.services.whatsapp_client import MediaResolutionError, WhatsAppClient

logger = logging.getLogger(__name__)

SUBSCRIBE_MODE = "subscribe"
DEFAULT_MIME_TYPE = "image/jpeg"

EVENT_RECEIVED = "EVENT_RECEIVED"
NO_MESSAGE = "No message"
DOCUMENT_SKIPPED = "PDF Skipped"

PROCESSING_REPLY = "🤖 Reading your receipt..."
DOCUMENT_REPLY = "⚠️ Please send an *Image (JPG/PNG)* of the document. PDFs and other files are not processed."
FAILURE_REPLY = "❌ Error reading file. Please try again."


def format_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def verify_subscription(mode: Optional[str], token: Optional[str], expected_token: str) -> bool:
    """Webhook subscription handshake check"""
    return bool(expected_token) and mode == SUBSCRIBE_MODE and token == expected_token


class WebhookHandler:
    """Runs one inbound WhatsApp event from envelope to reply"""

    def __init__(
            self,
            whatsapp: WhatsAppClient,
            db_service: DatabaseService,
            storage: MinioClient,
            ai_agent: AIAnalysisAgent,
    ):
        self.whatsapp = whatsapp
        self.db_service = db_service
        self.storage = storage
        self.ai_agent = ai_agent

    async def handle_event(self, payload: Any) -> str:
        """Process a webhook body and return the acknowledgement text"""
        envelope = WebhookEnvelope.parse(payload)
        if envelope is None or envelope.object != WHATSAPP_OBJECT:
            logger.info("Ignoring event that is not a WhatsApp business account event")
            return EVENT_RECEIVED

        message = envelope.first_message()
        if message is None:
            logger.info("No message found in body")
            return NO_MESSAGE

        sender = message.sender
        logger.info(f"From: {sender}, type: {message.type}")

        user = await self.db_service.get_user_by_phone(sender) if sender else None
        if user is None:
            # unknown senders get no reply to avoid loops
            logger.info(f"User lookup failed for {sender}")
            return EVENT_RECEIVED

        logger.info(f"User found: {user.name} ({user.id})")

        if not user.is_active:
            logger.info(f"Tenant {user.tenant_id} inactive")
            await self.whatsapp.send_text_message(sender, f"Hi {user.display_name}, account Inactive.")
            return EVENT_RECEIVED

        if message.type == MessageKind.TEXT:
            await self.whatsapp.send_text_message(sender, f"👋 Hi {user.display_name}! Send me a receipt photo.")
        elif message.type == MessageKind.DOCUMENT:
            await self.whatsapp.send_text_message(sender, DOCUMENT_REPLY)
            return DOCUMENT_SKIPPED
        elif message.type == MessageKind.IMAGE:
            await self.process_image(user, message)
        else:
            logger.info(f"Unhandled message type: {message.type}")

        return EVENT_RECEIVED

    async def process_image(self, user: UserContext, message: InboundMessage) -> None:
        """Media pipeline: resolve, download, store, extract, persist, reply"""
        sender = message.sender
        media_id = message.image.id if message.image else None
        mime_type = (message.image.mime_type if message.image else None) or DEFAULT_MIME_TYPE

        logger.info(f"Processing image: {media_id} ({mime_type})")
        await self.whatsapp.send_text_message(sender, PROCESSING_REPLY)

        try:
            if not media_id:
                raise MediaResolutionError("Image message without media id")

            media_url = await self.whatsapp.get_media_url(media_id)
            image_data = await self.whatsapp.download_media(media_url)

            object_name = await self.storage.upload_receipt(user.tenant_id, image_data, mime_type)
            image_url = self.storage.get_public_url(object_name)

            record = await self.ai_agent.extract_receipt(image_data, mime_type)

            try:
                await self.db_service.create_transaction(TransactionCreate(
                    tenant_id=user.tenant_id,
                    user_id=user.id,
                    amount=record.amount,
                    merchant=record.merchant,
                    status="Pending",
                    image_url=image_url,
                    category=record.category,
                    extracted_data=record.as_metadata(),
                ))
            except Exception as e:
                logger.error(f"DB insert error: {e}")

            await self.whatsapp.send_text_message(
                sender, f"✅ Saved!\n\n🏪 {record.merchant}\n💰 ₹{format_amount(record.amount)}"
            )

        except Exception as e:
            logger.exception(f"Processing error: {e}")
            await self.whatsapp.send_text_message(sender, FAILURE_REPLY)
