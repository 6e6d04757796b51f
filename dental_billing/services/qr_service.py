"""
QR payloads printed on receipts.

A receipt is never blocked by QR generation: any failure degrades to a
text placeholder.
"""

import base64
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx
from loguru import logger

from dental_billing.core.config import settings
from dental_billing.core.exceptions import handle_external_service_error


class QRCodeGenerator(Protocol):
    def generate(self, text: str) -> str:
        ...


def placeholder_payload(text: str) -> str:
    encoded = base64.b64encode(f"QR Code: {text}".encode("utf-8")).decode("ascii")
    return f"data:text/plain;base64,{encoded}"


def build_receipt_qr_text(patient_id: str, base_url: Optional[str] = None) -> str:
    """Booking link for the patient's next visit"""
    base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
    return f"{base_url}/appointments/book?{urlencode({'patient': patient_id})}"


class QRServerGenerator:
    """QR images from a goqr.me style HTTP API.

    By default the image URL itself is the payload. With fetch_image the PNG
    is downloaded and inlined as a data URI.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        size: Optional[int] = None,
        fetch_image: Optional[bool] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = base_url or settings.QR_SERVICE_URL
        self.size = size or settings.QR_SIZE
        self.fetch_image = settings.QR_FETCH_IMAGE if fetch_image is None else fetch_image
        self.timeout = timeout or settings.QR_TIMEOUT_SECONDS

    def image_url(self, text: str) -> str:
        params = {
            "size": f"{self.size}x{self.size}",
            "format": "png",
            "ecc": "M",
            "margin": 1,
            "data": text,
        }
        return f"{self.base_url}?{urlencode(params)}"

    def generate(self, text: str) -> str:
        try:
            url = self.image_url(text)
            if not self.fetch_image:
                return url

            response = httpx.get(url, timeout=self.timeout)
            response.raise_for_status()
            encoded = base64.b64encode(response.content).decode("ascii")
            return f"data:image/png;base64,{encoded}"
        except Exception as e:
            error = handle_external_service_error(e, "qr-code", "generate")
            logger.warning(f"{error.message}; using placeholder QR payload")
            return placeholder_payload(text)
