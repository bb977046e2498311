"""Submission workflow: token, payment, upload, record, then burn the token.

The submission insert and the conditional token update share one database
transaction, so a request either leaves a Submission and a used token or
neither. A payment reference pays for at most one submission. Files
uploaded for a request that does not commit are deleted.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import payments, repository, tokens
from .errors import ConflictError, ValidationError
from .ingest import FileIngestor, IngestedFile
from .models import Submission, SubmissionDraft, SubmissionForm, SubmittedFile, UploadedFile
from .scoring import Scorer
from .settings import settings

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "department", "course", "phone", "email")


def _clean_form(form: SubmissionForm) -> SubmissionForm:
    values = {}
    for field in REQUIRED_FIELDS:
        value = (getattr(form, field) or "").strip()
        if not value:
            raise ValidationError(f"{field} is required")
        values[field] = value
    ref = (form.payment_ref or "").strip() or None
    return SubmissionForm(token=(form.token or "").strip(), payment_ref=ref, **values)


def submit(
    db: Session,
    ingestor: FileIngestor,
    scorer: Optional[Scorer],
    form: SubmissionForm,
    files: Sequence[UploadedFile],
    unit_price: Optional[int] = None,
    require_payment: Optional[bool] = None,
) -> Submission:
    unit_price = settings.unit_price if unit_price is None else unit_price
    require_payment = settings.require_verified_payment if require_payment is None else require_payment

    token = tokens.validate(db, form.token)
    form = _clean_form(form)

    accepted = ingestor.check(files)
    if require_payment:
        payments.require_verified_payment(db, form.payment_ref, len(accepted) * unit_price)
    if form.payment_ref and repository.payment_ref_used(db, form.payment_ref):
        raise ConflictError("Payment already used")

    ingested: List[IngestedFile] = ingestor.ingest(accepted)
    try:
        stored = [SubmittedFile(file_url=i.url, file_name=i.name) for i in ingested]
        score = scorer.score(SubmissionDraft(form=form, files=stored)) if scorer else None
        submission = Submission(
            id=repository.new_id("sub_"),
            name=form.name,
            department=form.department,
            course=form.course,
            phone=form.phone,
            email=form.email,
            files=stored,
            file_count=len(stored),
            amount_paid=len(stored) * unit_price,
            payment_ref=form.payment_ref,
            score=score,
            token=token.token,
            submitted_at=repository.utcnow(),
        )
        repository.insert_submission(db, submission)
        if not tokens.mark_used(db, token.token):
            raise ConflictError("Token already used")
        db.commit()
    except IntegrityError as e:
        # unique payment_ref: a concurrent submission claimed the same payment
        db.rollback()
        ingestor.discard(ingested)
        raise ConflictError("Payment already used") from e
    except Exception:
        db.rollback()
        ingestor.discard(ingested)
        raise

    logger.info("submission %s recorded with %d files", submission.id, submission.file_count)
    return submission
