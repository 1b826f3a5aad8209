# receipt_agent/services/ai_agent.py
import base64
import json
import logging
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_openai import ChatOpenAI

from receipt_agent.config import settings
from receipt_agent.models.schemas import ExtractedRecord

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are an expert AI Data Extractor for accounting.
Extract ALL data from this image (which could be a Receipt, Tax Invoice, Purchase Order or Bank Statement).

Return a single JSON object with these specific requirements:

1. STANDARD FIELDS (use these exact keys):
   - "merchant_name": (string) Name of the vendor/seller.
   - "total_amount": (number) The final grand total.
   - "date": (string) YYYY-MM-DD.
   - "category": (string) Infer category (e.g. 'Travel', 'Inventory', 'Utilities').
   - "doc_type": (string) e.g. 'Invoice', 'Receipt', 'PO'.

2. COMPREHENSIVE EXTRACTION:
   - Extract EVERY other visible field as a key-value pair.
   - Look specifically for: "invoice_number", "po_number", "gstin_supplier", "gstin_buyer",
     "base_amount", "tax_amount" (IGST/CGST/SGST), "line_items" (as an array if possible).
   - If you see an address, extract it."""

_FENCE = re.compile(r"```(?:json)?")


class ExtractionParseError(Exception):
    """Model output is not a JSON object"""


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences around a model reply"""
    return _FENCE.sub("", text).strip()


def parse_extraction(text: str) -> ExtractedRecord:
    """Parse the fenced or bare JSON reply into an ExtractedRecord"""
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionParseError(f"expected a JSON object, got {type(data).__name__}")

    return ExtractedRecord.from_raw(data)


class AIAnalysisAgent:
    """Vision model receipt extractor"""

    def __init__(self, llm: BaseChatModel = None):
        # built on first use so a missing key only affects image messages
        self._llm = llm
        self._chain = None

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            try:
                self._llm = ChatOpenAI(
                    model=settings.siliconflow_model_vision,
                    api_key=settings.siliconflow_api_key,
                    base_url=settings.siliconflow_base_url,
                    temperature=settings.ai_temperature,
                    timeout=settings.http_timeout,
                )
                logger.info("AI extraction service initialised")

            except Exception as e:
                logger.error(f"AI extraction service initialisation failed: {e}")
                raise
        return self._llm

    @property
    def chain(self):
        if self._chain is None:
            self._chain = self.llm | StrOutputParser()
        return self._chain

    @staticmethod
    def build_message(image_data: bytes, mime_type: str) -> HumanMessage:
        encoded = base64.b64encode(image_data).decode("ascii")
        return HumanMessage(content=[
            {"type": "text", "text": EXTRACTION_PROMPT},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
        ])

    async def extract_receipt(self, image_data: bytes, mime_type: str) -> ExtractedRecord:
        """Send the image to the model and parse its reply.

        Model call failures propagate; an unparseable reply yields the
        "Unreadable" sentinel record instead.
        """
        logger.info(f"Sending {len(image_data)} bytes to {getattr(self.llm, 'model_name', 'model')}")
        text = await self.chain.ainvoke([self.build_message(image_data, mime_type)])
        logger.info(f"Model response: {text}")

        try:
            return parse_extraction(text)
        except ExtractionParseError as e:
            logger.error(f"JSON parse failed ({e}). Raw text: {text}")
            return ExtractedRecord.unreadable()
