import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, wait_exponential_jitter, retry_if_exception_type

from . import repository
from .errors import ConflictError, UpstreamError, ValidationError
from .models import Transaction
from .settings import settings

logger = logging.getLogger(__name__)

# Paystack allows alphanumerics plus "-", ".", "=" and "_"; a run of dots alone is a path segment
REFERENCE_RE = re.compile(r"^(?!\.+$)[A-Za-z0-9._=-]{1,100}$")

class PaystackGateway:
    """Thin client for Paystack's transaction verification endpoint."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @retry(
        reraise=True,
        stop=lambda state: state.attempt_number >= settings.gateway_max_attempts,
        wait=wait_exponential_jitter(initial=settings.gateway_backoff_seconds, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
    )
    def _get(self, reference: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        url = f"{self.base_url}/transaction/verify/{quote(reference, safe='')}"
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            return client.get(url, headers=headers)

    def fetch(self, reference: str) -> Dict[str, Any]:
        try:
            r = self._get(reference)
            r.raise_for_status()
            data = r.json()["data"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise UpstreamError("Payment verification failed") from e
        if not isinstance(data, dict):
            raise UpstreamError("Payment verification failed")
        return data

def _parse_paid_at(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unparseable paid_at from gateway: %r", value)
        return None

def _parse_amount(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("Invalid expected amount")
    return value

def verify_payment(
    db: Session,
    gateway: PaystackGateway,
    reference: Optional[str],
    expected_amount: Any,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Transaction:
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("Payment reference is required")
    if not REFERENCE_RE.match(reference):
        raise ValidationError("Invalid payment reference")
    expected_amount = _parse_amount(expected_amount)

    existing = repository.get_transaction(db, reference)
    if existing is not None:
        if existing.amount != expected_amount:
            raise ConflictError("Amount mismatch")
        return existing

    data = gateway.fetch(reference)
    if data.get("reference") != reference:
        logger.warning("gateway answered %r for reference %s", data.get("reference"), reference)
        raise UpstreamError("Payment verification failed")
    if data.get("status") != "success":
        logger.info("payment %s rejected: gateway status %r", reference, data.get("status"))
        raise ConflictError("Payment not successful")
    # gateway amounts are in minor units
    if data.get("amount") != expected_amount * 100:
        logger.info("payment %s rejected: amount %r != %d", reference, data.get("amount"), expected_amount * 100)
        raise ConflictError("Amount mismatch")

    tx = Transaction(
        id=repository.new_id("txn_"),
        name=name,
        email=email,
        amount=expected_amount,
        reference=reference,
        status="success",
        paid_at=_parse_paid_at(data.get("paid_at")),
        created_at=repository.utcnow(),
    )
    try:
        repository.insert_transaction(db, tx)
        db.commit()
    except IntegrityError:
        # a concurrent verify of the same reference won the insert
        db.rollback()
        recorded = repository.get_transaction(db, reference)
        if recorded is None:
            raise
        return recorded
    logger.info("payment %s verified (%d)", reference, expected_amount)
    return tx

def require_verified_payment(db: Session, reference: Optional[str], amount_due: int) -> Transaction:
    """Check that ``reference`` names a recorded successful payment covering ``amount_due``."""
    tx = repository.get_transaction(db, (reference or "").strip()) if reference else None
    if tx is None or tx.status != "success" or tx.amount < amount_due:
        raise ConflictError("Payment not verified")
    return tx
