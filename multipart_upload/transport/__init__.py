"""Request builder and transport collaborators."""

from multipart_upload.transport.transport import RequestsTransport, Transport

__all__ = ["RequestsTransport", "Transport"]
