from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
import json, uuid
from sqlalchemy import text
from sqlalchemy.orm import Session

from .models import Submission, SubmittedFile, Token, Transaction

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _ts(value: Optional[datetime]) -> Optional[str]:
    # fixed-width ISO text keeps lexical and chronological order identical
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")

def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))

def new_id(prefix: str) -> str:
    return prefix + uuid.uuid4().hex[:24]

# ----------------------------- tokens ---------------------------------------

def _token_row(r: Dict[str, Any]) -> Token:
    return Token(id=r["id"], token=r["token"], used=bool(r["used"]), created_at=_dt(r["created_at"]))

def get_token(db: Session, token: str) -> Optional[Token]:
    row = db.execute(
        text("SELECT id, token, used, created_at FROM tokens WHERE token=:token"),
        {"token": token},
    ).mappings().first()
    return _token_row(row) if row else None

def existing_tokens(db: Session, candidates: Iterable[str]) -> set:
    values = list(candidates)
    if not values:
        return set()
    params = {f"t{i}": v for i, v in enumerate(values)}
    placeholders = ", ".join(f":{k}" for k in params)
    rows = db.execute(text(f"SELECT token FROM tokens WHERE token IN ({placeholders})"), params)
    return {r[0] for r in rows}

def insert_tokens(db: Session, values: Sequence[str]) -> List[Token]:
    base = utcnow()
    created = []
    for i, value in enumerate(values):
        # spread the batch over distinct microseconds so newest-first is stable
        tok = Token(id=new_id("tok_"), token=value, used=False, created_at=base + timedelta(microseconds=i))
        db.execute(
            text("INSERT INTO tokens (id, token, used, created_at) VALUES (:id, :token, :used, :created_at)"),
            {"id": tok.id, "token": tok.token, "used": False, "created_at": _ts(tok.created_at)},
        )
        created.append(tok)
    return created

def mark_token_used(db: Session, token: str) -> bool:
    """Flip ``used`` only if it is still false; True when this call consumed it."""
    result = db.execute(
        text("UPDATE tokens SET used=:used WHERE token=:token AND used=:unused"),
        {"token": token, "used": True, "unused": False},
    )
    return result.rowcount == 1

def list_tokens(db: Session) -> List[Token]:
    rows = db.execute(
        text("SELECT id, token, used, created_at FROM tokens ORDER BY created_at DESC, id DESC")
    ).mappings().all()
    return [_token_row(r) for r in rows]

# ----------------------------- submissions ----------------------------------

_SUBMISSION_COLUMNS = (
    "id, name, department, course, phone, email, files, file_count, "
    "amount_paid, payment_ref, score, token, submitted_at"
)

def _submission_row(r: Dict[str, Any]) -> Submission:
    files = [SubmittedFile(file_url=f["fileUrl"], file_name=f["fileName"]) for f in json.loads(r["files"])]
    return Submission(
        id=r["id"], name=r["name"], department=r["department"], course=r["course"],
        phone=r["phone"], email=r["email"], files=files, file_count=r["file_count"],
        amount_paid=r["amount_paid"], payment_ref=r["payment_ref"], score=r["score"],
        token=r["token"], submitted_at=_dt(r["submitted_at"]),
    )

def insert_submission(db: Session, sub: Submission) -> None:
    files = [{"fileUrl": f.file_url, "fileName": f.file_name} for f in sub.files]
    db.execute(
        text(f"""INSERT INTO submissions ({_SUBMISSION_COLUMNS})
                 VALUES (:id, :name, :department, :course, :phone, :email, :files, :file_count,
                         :amount_paid, :payment_ref, :score, :token, :submitted_at)"""),
        {
            "id": sub.id, "name": sub.name, "department": sub.department, "course": sub.course,
            "phone": sub.phone, "email": sub.email, "files": json.dumps(files, ensure_ascii=False),
            "file_count": sub.file_count, "amount_paid": sub.amount_paid,
            "payment_ref": sub.payment_ref, "score": sub.score, "token": sub.token,
            "submitted_at": _ts(sub.submitted_at),
        },
    )

def payment_ref_used(db: Session, reference: str) -> bool:
    row = db.execute(
        text("SELECT 1 FROM submissions WHERE payment_ref=:reference"),
        {"reference": reference},
    ).first()
    return row is not None

def list_submissions(db: Session) -> List[Submission]:
    rows = db.execute(
        text(f"SELECT {_SUBMISSION_COLUMNS} FROM submissions ORDER BY submitted_at DESC, id DESC")
    ).mappings().all()
    return [_submission_row(r) for r in rows]

# ----------------------------- transactions ---------------------------------

_TRANSACTION_COLUMNS = "id, name, email, amount, reference, status, paid_at, created_at"

def _transaction_row(r: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=r["id"], name=r["name"], email=r["email"], amount=r["amount"],
        reference=r["reference"], status=r["status"], paid_at=_dt(r["paid_at"]),
        created_at=_dt(r["created_at"]),
    )

def get_transaction(db: Session, reference: str) -> Optional[Transaction]:
    row = db.execute(
        text(f"SELECT {_TRANSACTION_COLUMNS} FROM transactions WHERE reference=:reference"),
        {"reference": reference},
    ).mappings().first()
    return _transaction_row(row) if row else None

def insert_transaction(db: Session, tx: Transaction) -> None:
    db.execute(
        text(f"""INSERT INTO transactions ({_TRANSACTION_COLUMNS})
                 VALUES (:id, :name, :email, :amount, :reference, :status, :paid_at, :created_at)"""),
        {
            "id": tx.id, "name": tx.name, "email": tx.email, "amount": tx.amount,
            "reference": tx.reference, "status": tx.status, "paid_at": _ts(tx.paid_at),
            "created_at": _ts(tx.created_at),
        },
    )

def list_transactions(db: Session) -> List[Transaction]:
    rows = db.execute(
        text(f"SELECT {_TRANSACTION_COLUMNS} FROM transactions ORDER BY created_at DESC, id DESC")
    ).mappings().all()
    return [_transaction_row(r) for r in rows]
