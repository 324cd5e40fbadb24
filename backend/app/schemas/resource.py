from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional
from enum import Enum


class ResourceKind(str, Enum):
    FILE = "file"
    LINK = "link"


class Resource(BaseModel):
    """
    Leaf record under resources/{kind}/{year}/{module}/{key}.

    A file resource carries location (storage key), file_type and size;
    a link resource carries none of them. Both carry url.
    """
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="id")
    kind: ResourceKind = Field(..., alias="type")
    description: str = ""
    created_at: str = ""
    url: str = ""
    file_type: Optional[str] = None
    location: Optional[str] = None
    size: Optional[str] = None
    # Exact byte count; size is rounded for display
    size_bytes: Optional[int] = None

    @model_validator(mode='after')
    def check_kind_fields(self):
        if self.kind == ResourceKind.FILE:
            if not self.location:
                raise ValueError("File resources require a storage location")
        elif self.location or self.file_type or self.size or self.size_bytes is not None:
            raise ValueError("Link resources cannot carry file fields")
        return self

    @property
    def is_file(self) -> bool:
        return self.kind == ResourceKind.FILE

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ModuleSummary(BaseModel):
    name: str
    file_count: int = 0
    last_resource_timestamp: Optional[str] = None


class ModuleCreate(BaseModel):
    name: str


class ModuleRename(BaseModel):
    new_name: str


class LinkCreate(BaseModel):
    url: str = Field(..., min_length=1)
    description: str = ""


class ResourceList(BaseModel):
    module: str
    resources: List[Resource]


class ResolvedResource(BaseModel):
    url: str
    requires_auth: bool
    filename: Optional[str] = None


class PublicFile(BaseModel):
    """Flattened entry for the home-page "recent items" and static index"""
    id: Optional[str] = None
    name: str
    url: str = ""
    uploaded_at: Optional[str] = Field(None, alias="uploadedAt")
    size: Optional[str] = None
    ext: Optional[str] = None
    type: Optional[str] = None
    module: Optional[str] = None
    year: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class FileStats(BaseModel):
    kind: str
    total_files: int
    total_bytes: int
    formatted_size: str
    formatted_count: str
