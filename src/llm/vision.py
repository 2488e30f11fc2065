"""Payment-receipt detection for image attachments."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from src.config import settings
from src.llm.client import _get_client

logger = logging.getLogger(__name__)

CLASSIFY_PROMPT = """Look at this image and decide whether it is a screenshot or photo \
of a completed payment (bank transfer, GCash, Maya, remittance receipt, etc.).

Reply with a single JSON object and nothing else:
{"is_payment": true|false, "amount": "<amount with currency or null>", \
"sender_name": "<payer name or null>", "reference_number": "<reference or null>"}"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class PaymentResult(BaseModel):
    """What the vision model found in an image."""

    is_payment: bool = False
    amount: str | None = None
    sender_name: str | None = None
    reference_number: str | None = None

    @field_validator("amount", "sender_name", "reference_number", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str | None:
        if value is None or value == "" or value == "null":
            return None
        return str(value)


def parse_payment_result(raw: str) -> PaymentResult:
    """Parse the model's reply, tolerating code fences and chatter around the JSON."""
    match = _JSON_OBJECT.search(raw)
    if match is None:
        logger.warning("Vision reply had no JSON object: %s", raw[:200])
        return PaymentResult()
    try:
        return PaymentResult.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Unparseable vision reply: %s", raw[:200])
        return PaymentResult()


async def classify_payment(image_url: str, *, model: str | None = None) -> PaymentResult:
    """Ask the vision model whether ``image_url`` shows a payment."""
    client = _get_client()
    response = await client.chat.completions.create(
        model=model or settings.vision_model,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": CLASSIFY_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ],
        max_tokens=200,
        temperature=0,
    )
    raw = response.choices[0].message.content if response.choices else None
    result = parse_payment_result(raw or "")
    logger.info("Image classified: is_payment=%s amount=%s", result.is_payment, result.amount)
    return result
