import logging
from dataclasses import dataclass
from typing import List, Sequence

from tenacity import retry, stop_after_attempt, wait_exponential_jitter, retry_if_exception_type

from .errors import StorageError, UpstreamError, ValidationError
from .models import UploadedFile
from .storage import ObjectStore

logger = logging.getLogger(__name__)

@dataclass
class IngestedFile:
    url: str
    name: str
    key: str

class FileIngestor:
    """Moves an uploaded batch into object storage, all or nothing."""

    def __init__(self, store: ObjectStore, max_files: int = 5, max_file_bytes: int = 10 * 1024 * 1024,
                 truncate_extra: bool = False):
        self.store = store
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes
        self.truncate_extra = truncate_extra

    def check(self, files: Sequence[UploadedFile]) -> List[UploadedFile]:
        """Apply count and size limits before anything is uploaded."""
        if not files:
            raise ValidationError("No files uploaded")
        files = list(files)
        if len(files) > self.max_files:
            if not self.truncate_extra:
                raise ValidationError(f"Too many files (max {self.max_files})")
            logger.info("dropping %d files over the limit of %d", len(files) - self.max_files, self.max_files)
            files = files[: self.max_files]
        for f in files:
            if len(f.data) > self.max_file_bytes:
                raise ValidationError(f"File too large: {f.name}")
        return files

    def ingest(self, files: Sequence[UploadedFile]) -> List[IngestedFile]:
        accepted = self.check(files)
        done: List[IngestedFile] = []
        for f in accepted:
            try:
                stored = self.store.put(f.data, f.name, f.content_type)
            except StorageError as e:
                logger.error("upload of %r failed, rolling back %d stored files: %s", f.name, len(done), e)
                self.discard(done)
                raise UpstreamError("File upload failed") from e
            done.append(IngestedFile(url=stored.url, name=f.name, key=stored.key))
        return done

    def discard(self, ingested: Sequence[IngestedFile]) -> None:
        for item in ingested:
            try:
                self._delete(item.key)
            except StorageError:
                logger.exception("could not remove orphaned upload %s", item.key)

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=0.2, max=2),
        retry=retry_if_exception_type(StorageError),
    )
    def _delete(self, key: str) -> None:
        self.store.delete(key)
