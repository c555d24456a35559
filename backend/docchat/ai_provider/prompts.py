"""System prompt for document chat.

The prompt lists every document the content store holds so the model can
cite them by name.
"""
from typing import List

from docchat.storage import Document

KNOWLEDGE_BASE_PROMPT = """You are a helpful AI assistant with access to the user's document knowledge base.

The following files have been uploaded to the document store:

{file_references}

Important: These files are available to you through the document store. When answering questions, search through these documents for relevant information. Reference specific files when you use information from them.

If the answer cannot be found in the uploaded documents, you may use your general knowledge, but always indicate when you're doing so."""

NO_DOCUMENTS = "(no documents have been uploaded yet)"


def format_document_reference(document: Document) -> str:
    """Render one document entry of the system prompt."""
    return (
        f"File: {document.filename}\n"
        f"URI: {document.external_uri}\n"
        f"Type: {document.mime_type}\n"
        f"Uploaded: {document.upload_date.isoformat(sep=' ', timespec='seconds')}"
    )


def build_system_prompt(documents: List[Document]) -> str:
    """Build the system prompt from the documents that reached the content store."""
    references = "\n\n".join(
        format_document_reference(doc) for doc in documents if doc.synced
    )
    return KNOWLEDGE_BASE_PROMPT.format(file_references=references or NO_DOCUMENTS)
