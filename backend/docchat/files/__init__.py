"""Document upload module for DocChat.

The request body is streamed straight to disk: a bridge task pulls the body
into a bounded queue, an incremental multipart parser isolates the ``file``
field, and a bounded sink writes it under a ``<token>-<filename>`` name,
deleting the partial file on any failure. Completed files are handed to
the content store and recorded in the catalog.

Uploads are capped at 50MB by default (``uploads.max_file_size_mb``).
"""
