# sms.py
import logging
import re
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from config import settings
from dependencies import get_sms_gateway
from errors import SmsGatewayError
from schemas import SmsRequest, SmsResponse

logger = logging.getLogger(__name__)

sms_router = APIRouter()

PHONE_PATTERN = re.compile(r"^(\+63|0)9\d{9}$")
MAX_MESSAGE_LENGTH = 160


def is_valid_phone_number(number: str) -> bool:
    """Philippine mobile number: +639XXXXXXXXX or 09XXXXXXXXX."""
    return bool(PHONE_PATTERN.match(number))


def is_valid_message(message: str) -> bool:
    return len(message) <= MAX_MESSAGE_LENGTH


class SemaphoreClient:
    def __init__(
        self,
        api_key: Optional[str],
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls):
        return cls(
            api_key=settings.semaphore_api_key,
            url=settings.semaphore_url,
            timeout=settings.sms_timeout_seconds,
        )

    async def send(self, to: str, message: str) -> Any:
        if not self.api_key:
            raise SmsGatewayError(
                "SMS service not configured. Please check SEMAPHORE_API_KEY."
            )

        number = re.sub(r"\s+", "", to)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    json={"apikey": self.api_key, "number": number, "message": message},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = _response_body(exc.response)
            logger.error(
                "SMS API error %s: %s", exc.response.status_code, body
            )
            raise SmsGatewayError(
                "SMS service error", status_code=exc.response.status_code, details=body
            ) from exc
        except httpx.TransportError as exc:
            logger.error("Unable to reach SMS service: %s", exc)
            raise SmsGatewayError(
                "Unable to connect to SMS service. Please check your internet connection.",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            ) from exc

        return _response_body(response)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


@sms_router.post("/send-sms", response_model=SmsResponse)
async def send_sms_message(
    sms: SmsRequest, gateway: SemaphoreClient = Depends(get_sms_gateway)
):
    if not sms.to or not sms.message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: 'to' (phone number) and 'message'",
        )
    if not is_valid_phone_number(sms.to):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid phone number format. Use Philippine format: +639XXXXXXXXX or 09XXXXXXXXX",
        )
    if not is_valid_message(sms.message):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message too long. Maximum {MAX_MESSAGE_LENGTH} characters allowed.",
        )

    logger.info("Sending SMS to %s", sms.to)
    result = await gateway.send(sms.to, sms.message)
    return SmsResponse(data=result)
