from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class MessageOut(ApiModel):
    message: str

class TokenValidateIn(ApiModel):
    token: Optional[str] = None

class TokenGenerateIn(ApiModel):
    amount: Any = None

class TokenOut(ApiModel):
    id: str
    token: str
    used: bool
    created_at: datetime

class PaymentVerifyIn(ApiModel):
    reference: Optional[str] = None
    expected_amount: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None

class PaymentVerified(ApiModel):
    verified: bool

class FileOut(ApiModel):
    file_url: str
    file_name: str

class SubmissionOut(ApiModel):
    id: str
    name: str
    department: str
    course: str
    phone: str
    email: str
    files: List[FileOut]
    file_count: int
    amount_paid: int
    payment_ref: Optional[str] = None
    score: Optional[int] = None
    token: str
    submitted_at: datetime

class SubmissionCreated(ApiModel):
    message: str
    score: Optional[int] = None

class TransactionOut(ApiModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    amount: int
    reference: str
    status: str
    paid_at: Optional[datetime] = None
    created_at: datetime
