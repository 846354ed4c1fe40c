import os
import uuid
from abc import ABC, abstractmethod

from shared.core.config import settings
from ..core.errors import ExternalServiceError


class DocumentStore(ABC):
    """Stores byte blobs and hands back a retrievable reference."""

    @abstractmethod
    def store(self, content: bytes, filename: str, content_type: str) -> str:
        ...

    @abstractmethod
    def retrieve(self, reference: str) -> bytes:
        ...


class LocalDocumentStore(DocumentStore):
    def __init__(self, directory: str):
        self.directory = directory

    def store(self, content, filename, content_type):
        reference = f"{uuid.uuid4().hex}_{os.path.basename(filename)}"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(os.path.join(self.directory, reference), "wb") as f:
                f.write(content)
        except OSError as e:
            raise ExternalServiceError(f"Document storage failed: {e}") from e
        return reference

    def retrieve(self, reference):
        path = os.path.join(self.directory, os.path.basename(reference))
        if not os.path.exists(path):
            raise ExternalServiceError("Document not found in storage")
        with open(path, "rb") as f:
            return f.read()


def get_document_store() -> DocumentStore:
    return LocalDocumentStore(settings.DOCUMENT_DIR)
