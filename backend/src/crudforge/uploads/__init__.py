"""File uploads stored on the local filesystem, one directory per file type."""

from crudforge.uploads.handlers import FileUploadResource
from crudforge.uploads.storage import IncomingFile, UploadStorage, secure_filename

__all__ = ["FileUploadResource", "IncomingFile", "UploadStorage", "secure_filename"]
