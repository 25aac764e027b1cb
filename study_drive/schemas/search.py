"""
Pydantic schemas for drive search
"""
from pydantic import BaseModel

from .file import FileResponse
from .folder import FolderResponse


class SearchResponse(BaseModel):
    query: str
    folders: list[FolderResponse]
    files: list[FileResponse]
