"""Bank transfer (payout) provider client.

Talks to the Tap transfers API. Only the payout dispatcher uses it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import requests

from shared.core.config import settings
from ..core.errors import ExternalServiceError
from ..enum.rental_enum import TransferStatus

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = {"completed", "succeeded", "success"}
FAILED_STATUSES = {"failed", "cancelled", "declined"}


def map_transfer_status(raw_status: str | None) -> TransferStatus:
    """Map a provider status onto our transfer status."""
    value = (raw_status or "").lower()
    if value in COMPLETED_STATUSES:
        return TransferStatus.completed
    if value in FAILED_STATUSES:
        return TransferStatus.failed
    return TransferStatus.processing


@dataclass(frozen=True)
class TransferRequest:
    amount: float
    currency: str
    description: str
    iban: str
    account_holder_name: str
    bank_name: str
    reference: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    status: TransferStatus
    raw_status: str | None = None


class TransferClient(ABC):

    @abstractmethod
    def create_transfer(self, request: TransferRequest) -> TransferResult:
        ...

    @abstractmethod
    def get_transfer(self, transfer_id: str) -> TransferResult:
        ...


class TapTransferClient(TransferClient):
    def __init__(self, api_url: str, secret_key: str | None, timeout: int = 15):
        self.api_url = api_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout

    def _headers(self) -> dict:
        if not self.secret_key:
            raise ExternalServiceError("TAP_SECRET_KEY not configured")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _error_message(response) -> str:
        try:
            errors = response.json().get("errors") or []
            return errors[0].get("description") or "Unknown error"
        except (ValueError, AttributeError, IndexError):
            return "Unknown error"

    @staticmethod
    def _transfer_data(response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(f"Unreadable transfer response: {e}") from e
        if not isinstance(data, dict) or not data.get("id"):
            raise ExternalServiceError("Transfer response has no transfer id")
        return data

    def create_transfer(self, request):
        body = {
            "amount": request.amount,
            "currency": request.currency,
            "description": request.description,
            "destination": {
                "type": "bank_account",
                "iban": request.iban,
                "account_holder_name": request.account_holder_name,
                "bank_name": request.bank_name,
            },
            "reference": {"payment": request.reference},
            "metadata": request.metadata,
        }

        try:
            response = requests.post(
                self.api_url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError(f"Transfer request failed: {e}") from e

        if not response.ok:
            message = self._error_message(response)
            logger.error(f"Tap Transfer API error: {message}")
            raise ExternalServiceError(f"Transfer failed: {message}")

        data = self._transfer_data(response)
        return TransferResult(
            transfer_id=data["id"],
            status=map_transfer_status(data.get("status")),
            raw_status=data.get("status"),
        )

    def get_transfer(self, transfer_id):
        try:
            response = requests.get(
                f"{self.api_url}/{transfer_id}", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError(
                f"Failed to get transfer status: {e}") from e

        if not response.ok:
            raise ExternalServiceError(
                f"Failed to get transfer status: {self._error_message(response)}")

        data = self._transfer_data(response)
        return TransferResult(
            transfer_id=data["id"],
            status=map_transfer_status(data.get("status")),
            raw_status=data.get("status"),
        )


def get_transfer_client() -> TransferClient:
    return TapTransferClient(
        settings.TAP_API_URL,
        settings.TAP_SECRET_KEY,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
