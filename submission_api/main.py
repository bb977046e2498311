import logging, os
from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote, unquote, urlparse

import httpx
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from . import payments, repository, tokens, workflow
from .db import SessionLocal, init_db
from .errors import InternalError, ServiceError, UpstreamError, ValidationError
from .ingest import FileIngestor
from .models import SubmissionForm, UploadedFile
from .schemas import (
    MessageOut, PaymentVerified, PaymentVerifyIn, SubmissionCreated, SubmissionOut,
    TokenGenerateIn, TokenOut, TokenValidateIn, TransactionOut,
)
from .scoring import RandomScorer
from .security import require_admin
from .settings import settings
from .storage import ObjectStore, build_object_store, safe_filename

logger = logging.getLogger(__name__)

app = FastAPI(title="Assignment Submission API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.storage_backend == "local":
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

# ----------------------------- dependencies ---------------------------------

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    return build_object_store(settings)

def get_ingestor(store: ObjectStore = Depends(get_object_store)) -> FileIngestor:
    return FileIngestor(
        store,
        max_files=settings.max_files,
        max_file_bytes=settings.max_file_bytes,
        truncate_extra=settings.truncate_extra_files,
    )

def get_scorer() -> Optional[RandomScorer]:
    if not settings.scoring_enabled:
        return None
    return RandomScorer(settings.score_min, settings.score_max)

def get_gateway() -> payments.PaystackGateway:
    return payments.PaystackGateway(
        settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.request_timeout_seconds,
    )

def get_download_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None

# ----------------------------- errors / startup -----------------------------

@app.exception_handler(ServiceError)
async def _service_error(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"message": exc.message}, status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError):
    logger.info("%s %s invalid body: %s", request.method, request.url.path, exc.errors())
    return JSONResponse({"message": "Invalid request body"}, status_code=400)

@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    err = InternalError("Server error")
    return JSONResponse({"message": err.message}, status_code=err.status_code)

@app.on_event("startup")
def _startup():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.storage_backend == "local":
        os.makedirs(settings.upload_dir, exist_ok=True)
    init_db()

# ----------------------------- public routes --------------------------------

@app.get("/", response_class=PlainTextResponse)
def liveness():
    return "Assignment Submission API running"

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

@app.post("/api/tokens/validate", response_model=MessageOut)
def validate_token(body: TokenValidateIn, db: Session = Depends(get_db)):
    tokens.validate(db, body.token)
    return MessageOut(message="Token valid")

@app.post("/api/payment/verify", response_model=PaymentVerified)
def verify_payment(
    body: PaymentVerifyIn,
    db: Session = Depends(get_db),
    gateway: payments.PaystackGateway = Depends(get_gateway),
):
    payments.verify_payment(db, gateway, body.reference, body.expected_amount, body.name, body.email)
    return PaymentVerified(verified=True)

@app.post("/api/submissions", response_model=SubmissionCreated, response_model_exclude_none=True)
def create_submission(
    name: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    course: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    token: Optional[str] = Form(None),
    payment_ref: Optional[str] = Form(None, alias="paymentRef"),
    file: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    ingestor: FileIngestor = Depends(get_ingestor),
    scorer: Optional[RandomScorer] = Depends(get_scorer),
):
    form = SubmissionForm(
        name=name or "", department=department or "", course=course or "",
        phone=phone or "", email=email or "", token=token or "", payment_ref=payment_ref,
    )
    uploads = []
    for part in file or []:
        # one byte past the limit is enough to reject the file
        data = part.file.read(settings.max_file_bytes + 1)
        if not part.filename and not data:
            continue
        uploads.append(UploadedFile(
            data=data,
            name=part.filename or "file",
            content_type=part.content_type or "application/octet-stream",
        ))
    submission = workflow.submit(db, ingestor, scorer, form, uploads)
    return SubmissionCreated(message="Submission successful", score=submission.score)

# ----------------------------- admin routes ---------------------------------

@app.get("/api/submissions", response_model=List[SubmissionOut], dependencies=[Depends(require_admin)])
def list_submissions(db: Session = Depends(get_db)):
    return repository.list_submissions(db)

@app.get("/api/tokens", response_model=List[TokenOut], dependencies=[Depends(require_admin)])
def list_tokens(db: Session = Depends(get_db)):
    return repository.list_tokens(db)

@app.post("/api/tokens/generate", response_model=List[TokenOut], dependencies=[Depends(require_admin)])
def generate_tokens(body: TokenGenerateIn, db: Session = Depends(get_db)):
    return tokens.generate_batch(db, body.amount)

@app.get("/api/transactions", response_model=List[TransactionOut], dependencies=[Depends(require_admin)])
def list_transactions(db: Session = Depends(get_db)):
    return repository.list_transactions(db)

def attachment_header(filename: str) -> str:
    return f"attachment; filename=\"{safe_filename(filename)}\"; filename*=UTF-8''{quote(filename)}"

@app.get("/api/download", dependencies=[Depends(require_admin)])
async def download(
    url: Optional[str] = None,
    name: Optional[str] = None,
    store: ObjectStore = Depends(get_object_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_download_transport),
):
    if not url:
        raise ValidationError("url is required")
    # only proxy objects we stored ourselves
    if not url.startswith(store.public_base_url + "/"):
        raise ValidationError("Download URL is not allowed")
    filename = name or unquote(urlparse(url).path.rsplit("/", 1)[-1]) or "download"

    client = httpx.AsyncClient(timeout=settings.request_timeout_seconds, transport=transport, follow_redirects=True)
    try:
        upstream = await client.send(client.build_request("GET", url), stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        raise UpstreamError("Download failed") from e
    if upstream.status_code >= 400:
        await upstream.aclose()
        await client.aclose()
        raise UpstreamError("Download failed")

    async def _close():
        await upstream.aclose()
        await client.aclose()

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=upstream.headers.get("content-type", "application/octet-stream"),
        headers={"Content-Disposition": attachment_header(filename)},
        background=BackgroundTask(_close),
    )
