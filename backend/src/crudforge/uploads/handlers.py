"""Upload surface handlers: serve, upload, replace and delete files."""

from __future__ import annotations

import logging

from starlette.datastructures import UploadFile
from starlette.responses import FileResponse

from crudforge.errors import NotFoundError, ValidationError
from crudforge.pipeline.types import RequestContext
from crudforge.uploads.storage import IncomingFile, UploadStorage

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"


class FileUploadResource:
    """Implements FileActions on top of an :class:`UploadStorage`.

    Args:
        storage: Where files are kept
        mount: Public path of the surface, e.g. ``/api/uploads``; returned
            URLs are ``<base url><mount>/<fileType>/<stored name>``
    """

    def __init__(self, storage: UploadStorage, mount: str):
        self.storage = storage
        self.mount = mount.rstrip("/")

    async def _read_files(self, ctx: RequestContext, file_type: str) -> list[IncomingFile]:
        """Files sent in the multipart field named after *file_type*."""
        self.storage.restriction(file_type)
        if ctx.request is None:
            return []
        form = await ctx.request.form()
        files = []
        for item in form.getlist(file_type):
            if isinstance(item, UploadFile):
                files.append(
                    IncomingFile(
                        filename=item.filename or "",
                        content=await item.read(),
                        content_type=item.content_type,
                    )
                )
        return files

    def _url(self, ctx: RequestContext, file_type: str, name: str) -> str:
        base = str(ctx.request.base_url).rstrip("/") if ctx.request is not None else ""
        return f"{base}{self.mount}/{file_type}/{name}"

    def _store(self, ctx: RequestContext, file_type: str, files: list[IncomingFile]) -> str | list[str]:
        self.storage.check(file_type, files)
        urls = [self._url(ctx, file_type, self.storage.save(file_type, f)) for f in files]
        return urls[0] if len(urls) == 1 else urls

    async def find_file(self, ctx: RequestContext) -> None:
        path = self.storage.path_for(ctx.params["fileType"], ctx.params["fileName"])
        ctx.response = FileResponse(path, headers={"Cache-Control": CACHE_CONTROL})

    async def upload_file(self, ctx: RequestContext) -> None:
        file_type = ctx.params["fileType"]
        files = await self._read_files(ctx, file_type)
        if not files:
            raise ValidationError(
                "No file uploaded",
                details=[{"field": file_type, "message": "required"}],
                code="NoFileUploaded",
            )
        data = self._store(ctx, file_type, files)
        message = (
            f"{len(data)} files uploaded successfully"
            if isinstance(data, list)
            else "File uploaded successfully"
        )
        ctx.respond(200, {"success": True, "data": data, "message": message})

    async def update_file(self, ctx: RequestContext) -> None:
        file_type = ctx.params["fileType"]
        old_name = ctx.params["fileName"]
        files = await self._read_files(ctx, file_type)
        if not files:
            raise ValidationError(
                "No new file uploaded",
                details=[{"field": file_type, "message": "required"}],
                code="NoFileUploaded",
            )
        data = self._store(ctx, file_type, files)
        try:
            self.storage.delete(file_type, old_name)
        except NotFoundError:
            logger.warning("Could not delete replaced upload %s/%s: not found", file_type, old_name)
        message = (
            f"File updated successfully. {len(data)} new files uploaded"
            if isinstance(data, list)
            else "File updated successfully"
        )
        ctx.respond(200, {"success": True, "data": data, "message": message})

    async def delete_file(self, ctx: RequestContext) -> None:
        self.storage.delete(ctx.params["fileType"], ctx.params["fileName"])
        ctx.respond(204)
