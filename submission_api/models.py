from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

@dataclass
class Token:
    id: str
    token: str
    used: bool
    created_at: datetime

@dataclass
class SubmittedFile:
    file_url: str
    file_name: str

@dataclass
class Submission:
    id: str
    name: str
    department: str
    course: str
    phone: str
    email: str
    files: List[SubmittedFile]
    file_count: int
    amount_paid: int
    payment_ref: Optional[str]
    score: Optional[int]
    token: str
    submitted_at: datetime

@dataclass
class Transaction:
    id: str
    name: Optional[str]
    email: Optional[str]
    amount: int
    reference: str
    status: str          # success | failed
    paid_at: Optional[datetime]
    created_at: datetime

@dataclass
class SubmissionForm:
    name: str = ""
    department: str = ""
    course: str = ""
    phone: str = ""
    email: str = ""
    token: str = ""
    payment_ref: Optional[str] = None

@dataclass
class UploadedFile:
    data: bytes
    name: str
    content_type: str = "application/octet-stream"

@dataclass
class SubmissionDraft:
    form: SubmissionForm
    files: List[SubmittedFile] = field(default_factory=list)
