"""
Cashfree Payouts API: penny tests for bank verification and provider transfers.
"""
import logging
import secrets
import time
from decimal import Decimal

import httpx
from django.conf import settings

from general.errors import ExternalServiceError
from payouts import config

logger = logging.getLogger(__name__)


class PayoutGatewayError(ExternalServiceError):
    """Cashfree Payouts rejected the transfer or could not be reached."""
    pass


def is_configured() -> bool:
    return bool(getattr(settings, "CASHFREE_PAYOUT_APP_ID", "") and getattr(settings, "CASHFREE_PAYOUT_SECRET_KEY", ""))


def random_penny_amount() -> Decimal:
    paise = config.PENNY_TEST_MIN_PAISE + secrets.randbelow(config.PENNY_TEST_MAX_PAISE - config.PENNY_TEST_MIN_PAISE + 1)
    return Decimal(paise) / 100


class CashfreePayoutsClient:
    def __init__(self, app_id=None, secret_key=None, base_url=None, timeout=30.0):
        self.app_id = app_id if app_id is not None else settings.CASHFREE_PAYOUT_APP_ID
        self.secret_key = secret_key if secret_key is not None else settings.CASHFREE_PAYOUT_SECRET_KEY
        self.base_url = (base_url or settings.CASHFREE_PAYOUT_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _headers(self) -> dict:
        if not (self.app_id and self.secret_key):
            raise PayoutGatewayError("Cashfree Payout not configured. Please contact support.")
        return {
            "Content-Type": "application/json",
            "X-Client-Id": self.app_id,
            "X-Client-Secret": self.secret_key,
        }

    def _request_transfer(self, transfer_data: dict) -> dict:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self.timeout) as http_client:
                response = http_client.post(
                    f"{self.base_url}/payout/v1/requestTransfer",
                    json=transfer_data,
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.warning("cashfree_payouts: transfer=%s request failed: %s", transfer_data["transferId"], e)
            raise PayoutGatewayError("Payout gateway is unreachable. Please try again.")
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or body.get("status") == "ERROR":
            logger.warning(
                "cashfree_payouts: transfer=%s rejected status=%s body=%s",
                transfer_data["transferId"], response.status_code, response.text[:500],
            )
            raise PayoutGatewayError(body.get("message") or "Payout processing failed")
        return body

    def send_penny_test(self, bank_account) -> dict:
        """
        Deposit a random 1.00 to 9.99 amount the provider must read back from their statement.

        Returns:
            {"transfer_id": ..., "penny_amount": Decimal, "reference_id": ..., "status": ...}
        """
        transfer_id = f"penny_{bank_account.pk}_{int(time.time() * 1000)}"
        amount = random_penny_amount()
        body = self._request_transfer({
            "transferId": transfer_id,
            "transferMode": "banktransfer",
            "amount": float(amount),
            "remarks": f"Bank account verification for {settings.SITE_NAME}",
            "beneDetails": self._bene_details(f"bene_{transfer_id}", bank_account),
        })
        data = body.get("data") or {}
        return {
            "transfer_id": data.get("transferId", transfer_id),
            "penny_amount": amount,
            "reference_id": str(data.get("referenceId", "")),
            "status": data.get("status", ""),
        }

    def request_transfer(self, payout) -> dict:
        transfer_id = f"payout_{payout.pk}_{int(time.time() * 1000)}"
        body = self._request_transfer({
            "transferId": transfer_id,
            "transferMode": "banktransfer",
            "amount": payout.actual_amount,
            "remarks": f"{settings.SITE_NAME} provider payout - Provider: {payout.provider_id}",
            "beneDetails": self._bene_details(f"provider_{payout.provider_id}_{transfer_id}", payout.bank_account),
        })
        data = body.get("data") or {}
        return {
            "transfer_id": data.get("transferId", transfer_id),
            "reference_id": str(data.get("referenceId", "")),
            "status": data.get("status", ""),
            "response": body,
        }

    @staticmethod
    def _bene_details(bene_id: str, bank_account) -> dict:
        return {
            "beneId": bene_id,
            "name": bank_account.account_holder_name,
            "email": settings.DEFAULT_FROM_EMAIL,
            "phone": "9999999999",
            "bankAccount": bank_account.account_number,
            "ifsc": bank_account.ifsc_code,
            "address1": bank_account.bank_name,
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400001",
        }
