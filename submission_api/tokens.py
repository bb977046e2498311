"""Single-use access tokens gating one submission each."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from . import repository
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Token
from .settings import settings

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.digits + string.ascii_uppercase
TOKEN_LENGTH = 8


def random_token(prefix: Optional[str] = None) -> str:
    prefix = settings.token_prefix if prefix is None else prefix
    return prefix + "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def validate(db: Session, token: Optional[str]) -> Token:
    """Return the token record when it exists and is still unused."""
    value = (token or "").strip()
    if not value:
        raise ValidationError("Token is required")
    record = repository.get_token(db, value)
    if record is None:
        raise NotFoundError("Invalid token")
    if record.used:
        raise ConflictError("Token already used")
    return record


def mark_used(db: Session, token: str) -> bool:
    return repository.mark_token_used(db, token)


def parse_batch_size(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Invalid amount")
    if amount <= 0 or amount > settings.max_token_batch:
        raise ValidationError("Invalid amount")
    return amount


def generate_batch(db: Session, amount: Any) -> List[Token]:
    count = parse_batch_size(amount)
    values: List[str] = []
    while len(values) < count:
        candidates = {random_token() for _ in range(count - len(values))} - set(values)
        taken = repository.existing_tokens(db, candidates)
        values.extend(sorted(candidates - taken))
    created = repository.insert_tokens(db, values)
    db.commit()
    logger.info("generated %d tokens", len(created))
    return created
