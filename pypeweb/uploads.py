"""
Uploaded files.

Multipart request bodies are split into form fields and
:class:`UploadedFile` objects by :meth:`pypeweb.request.Request.from_wsgi`.
Handlers store them through a :class:`FileUploader`::

    uploader = FileUploader(["jpg", "png"], max_size=2 * 1024 * 1024)
    filename = uploader.upload(request.file("avatar"), "storage/avatars")
"""

import os
import secrets
from email import policy
from email.parser import BytesParser
from typing import Dict, Iterable, Optional, Tuple

from pypeweb.errors import UploadError
from pypeweb.logging import get_logger

logger = get_logger(__name__)


class UploadedFile:
    """One file part of a multipart body, held in memory."""

    def __init__(self, filename: str, content_type: str = "application/octet-stream", content: bytes = b""):
        # never trust a client-side path
        self.filename = os.path.basename(filename.replace("\\", "/"))
        self.content_type = content_type
        self.content = content

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lstrip(".").lower()

    def save(self, path: str) -> str:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "wb") as f:
            f.write(self.content)
        return path

    def __repr__(self) -> str:
        return f"<UploadedFile {self.filename!r} {self.content_type} {self.size} bytes>"


class FileUploader:
    """Stores uploads under a random name after checking extension and size."""

    def __init__(self, allowed_extensions: Iterable[str] = (), max_size: Optional[int] = None):
        self.allowed_extensions = {ext.lower().lstrip(".") for ext in allowed_extensions}
        self.max_size = max_size

    def check(self, file: Optional[UploadedFile]) -> UploadedFile:
        if file is None or not file.filename:
            raise UploadError("No file was uploaded")
        if self.allowed_extensions and file.extension not in self.allowed_extensions:
            logger.error("upload_extension_rejected", extension=file.extension, allowed=sorted(self.allowed_extensions))
            raise UploadError(f"File type .{file.extension} is not allowed")
        if self.max_size is not None and file.size > self.max_size:
            logger.error("upload_too_large", size=file.size, max_size=self.max_size)
            raise UploadError(f"File exceeds the maximum size of {self.max_size} bytes")
        return file

    def upload(self, file: Optional[UploadedFile], directory: str) -> str:
        """Save ``file`` into ``directory`` and return the generated filename."""
        file = self.check(file)
        filename = secrets.token_hex(8)
        if file.extension:
            filename += "." + file.extension
        path = file.save(os.path.join(directory, filename))
        logger.info("file_uploaded", path=path, size=file.size)
        return filename


def parse_multipart(body: bytes, content_type: str) -> Tuple[Dict[str, str], Dict[str, UploadedFile]]:
    """Split a ``multipart/form-data`` body into form fields and files."""
    message = BytesParser(policy=policy.HTTP).parsebytes(
        b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    )
    fields: Dict[str, str] = {}
    files: Dict[str, UploadedFile] = {}
    if not message.is_multipart():
        return fields, files

    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            continue
        content = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        if filename is None:
            fields[name] = content.decode(part.get_content_charset() or "utf-8", "replace")
        elif filename:
            files[name] = UploadedFile(filename, part.get_content_type(), content)
    return fields, files
