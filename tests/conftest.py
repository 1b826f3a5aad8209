"""
Shared pytest fixtures: in-memory fakes for the external services + FastAPI TestClient.
"""
import json

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from receipt_agent.api.endpoints import get_webhook_handler
from receipt_agent.config import settings
from receipt_agent.main import app
from receipt_agent.models.schemas import UserContext
from receipt_agent.services.ai_agent import AIAnalysisAgent
from receipt_agent.services.minio_client import StorageError
from receipt_agent.services.webhook_handler import WebhookHandler
from receipt_agent.services.whatsapp_client import MediaResolutionError

VERIFY_TOKEN = "secret-token"
ACTIVE_PHONE = "919800000001"
INACTIVE_PHONE = "919800000002"

RECEIPT_JSON = {
    "merchant_name": "Acme",
    "total_amount": 42.5,
    "date": "2024-01-01",
    "category": "Travel",
    "doc_type": "Receipt",
}


class FakeWhatsApp:
    def __init__(self):
        self.sent = []
        self.media_requests = []
        self.downloads = []
        self.image = b"\xff\xd8\xff\xe0fake-jpeg"
        self.resolution_error = False

    async def send_text_message(self, to, body):
        self.sent.append((to, body))
        return True

    async def get_media_url(self, media_id):
        self.media_requests.append(media_id)
        if self.resolution_error:
            raise MediaResolutionError("Could not get media URL from WhatsApp")
        return f"https://lookaside.fbsbx.com/media/{media_id}"

    async def download_media(self, url):
        self.downloads.append(url)
        return self.image

    @property
    def bodies(self):
        return [body for _, body in self.sent]


class FakeDatabase:
    def __init__(self):
        self.users = {
            ACTIVE_PHONE: UserContext(
                id="user-1", name="Priya", tenant_id="tenant-1", subscription_status="active"
            ),
            INACTIVE_PHONE: UserContext(
                id="user-2", name="Ravi", tenant_id="tenant-2", subscription_status="cancelled"
            ),
        }
        self.lookups = []
        self.transactions = []
        self.insert_error = False

    async def get_user_by_phone(self, phone_number):
        self.lookups.append(phone_number)
        return self.users.get(phone_number)

    async def create_transaction(self, data):
        if self.insert_error:
            raise Exception("Database insert failed: duplicate key")
        self.transactions.append(data)
        return f"txn-{len(self.transactions)}"


class FakeStorage:
    def __init__(self):
        self.uploads = []
        self.upload_error = False

    async def upload_receipt(self, tenant_id, image_data, content_type):
        if self.upload_error:
            raise StorageError("Storage upload failed: bucket not found")
        object_name = f"{tenant_id}/1704067200000.jpg"
        self.uploads.append((object_name, image_data, content_type))
        return object_name

    def get_public_url(self, object_name):
        return f"http://minio.local/receipts/{object_name}"


class CountingAIAgent(AIAnalysisAgent):
    def __init__(self, response):
        super().__init__(llm=FakeListChatModel(responses=[response]))
        self.calls = []

    async def extract_receipt(self, image_data, mime_type):
        self.calls.append((image_data, mime_type))
        return await super().extract_receipt(image_data, mime_type)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def ai_response():
    return json.dumps(RECEIPT_JSON)


@pytest.fixture
def ai_agent(ai_response):
    return CountingAIAgent(ai_response)


@pytest.fixture
def handler(whatsapp, database, storage, ai_agent):
    return WebhookHandler(whatsapp=whatsapp, db_service=database, storage=storage, ai_agent=ai_agent)


@pytest.fixture
def client(handler, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_verify_token", VERIFY_TOKEN)
    app.dependency_overrides[get_webhook_handler] = lambda: handler
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
