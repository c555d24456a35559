"""DocChat: document upload and streaming chat backend."""
