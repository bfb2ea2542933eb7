# documents.py
# Document collaborator contract. Ingestion and chunking (PDF, HTML, vector
# search) live outside this package; the engine only needs something that turns
# a bound Document into context text for the prompt.

from abc import ABC, abstractmethod

from pydantic import BaseModel

from llm_functions.models import Document


class DocumentContext(BaseModel):
    result: str


class DocumentSplitter(ABC):
    @abstractmethod
    async def split(self, document: Document, execution_id: str, prompt: str) -> DocumentContext:
        """Return the context text for `document` relevant to `prompt`."""


class TextDocumentSplitter(DocumentSplitter):
    """Passes text inputs through unchanged. Bytes are decoded as UTF-8."""

    async def split(self, document: Document, execution_id: str, prompt: str) -> DocumentContext:
        payload = document.input
        if payload is None:
            return DocumentContext(result="")
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return DocumentContext(result=str(payload))
