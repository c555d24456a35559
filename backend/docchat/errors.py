"""Error taxonomy shared by the upload and chat pipelines.

Every error carries the HTTP status code the routers answer with, so the
endpoints can map failures without inspecting message text.

    MissingFile           400  no file field in the multipart body
    MalformedUpload       400  not multipart, no boundary, or a broken body
    SizeLimitExceeded     413  the file field exceeded the configured cap
    WriteFailure          500  local disk error while persisting the file
    ExternalStoreFailure  500  the content store rejected or failed the upload
    PersistenceFailure    500  a catalog insert/query failed
    ModelStreamFailure    500  the model call failed or broke mid-stream
    ChatNotFound          404  unknown chat id, or a chat owned by another caller
    Unauthorized          401  no caller identity on the request
"""


class DocChatError(Exception):
    """Base exception for pipeline errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MissingFile(DocChatError):
    """Raised when the body finishes without presenting the file field."""
    def __init__(self, message: str = "No file uploaded"):
        super().__init__(message, status_code=400)


class MalformedUpload(DocChatError):
    """Raised when the request body cannot be parsed as multipart/form-data."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class SizeLimitExceeded(DocChatError):
    """Raised when the file field grows past the configured byte limit."""
    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        limit_mb = limit_bytes / (1024 * 1024)
        super().__init__(f"File exceeds {limit_mb:g}MB limit", status_code=413)


class WriteFailure(DocChatError):
    """Raised when the local file cannot be opened, written or closed."""
    def __init__(self, message: str):
        super().__init__(f"Failed to write upload: {message}", status_code=500)


class ExternalStoreFailure(DocChatError):
    """Raised when the content store upload fails."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class PersistenceFailure(DocChatError):
    """Raised when a catalog operation fails."""
    def __init__(self, message: str):
        super().__init__(f"Database error: {message}", status_code=500)


class ModelStreamFailure(DocChatError):
    """Raised when the model call fails or errors while streaming."""
    def __init__(self, message: str, provider_name: str = "unknown"):
        self.provider_name = provider_name
        super().__init__(f"Provider {provider_name} error: {message}", status_code=500)


class Unauthorized(DocChatError):
    """Raised when the request carries no caller identity."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class ChatNotFound(DocChatError):
    """Raised when a chat id is unknown or belongs to another caller."""
    def __init__(self, message: str = "Chat not found"):
        super().__init__(message, status_code=404)
