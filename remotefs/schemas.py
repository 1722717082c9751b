from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .services.file_ops import NodeKind, NodeMetadata


def format_timestamp(meta: NodeMetadata) -> str:
    return meta.modified.strftime('%Y-%m-%dT%H:%M:%SZ')


class NodeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: NodeKind
    size: int
    last_modified: str = Field(alias='lastModified')

    @classmethod
    def from_metadata(cls, meta: NodeMetadata) -> 'NodeOut':
        return cls(name=meta.name, type=meta.kind, size=meta.size, last_modified=format_timestamp(meta))


class MkdirRequest(BaseModel):
    name: str


class RenameRequest(BaseModel):
    name: str = Field(default='', validation_alias=AliasChoices('name', 'newName', 'new_name'))


class SuccessResponse(BaseModel):
    success: bool = True


class UploadResponse(SuccessResponse):
    uploaded: list[str]


class CreatedResponse(SuccessResponse):
    path: str


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None
