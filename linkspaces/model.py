from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = 1
DEFAULT_EMOJI = "📁"
UNTITLED = "Untitled"

OpenMode = Literal["tabs", "window"]
Number = Union[int, float]


class _Aliased(BaseModel):
    # Attributes are snake_case; the persisted JSON uses the camelCase aliases.
    model_config = ConfigDict(populate_by_name=True)


class OpenAllSettings(_Aliased):
    open_mode: OpenMode = Field("tabs", alias="openMode")
    confirm_open_all: bool = Field(True, alias="confirmOpenAll")
    max_open_all: int = Field(24, ge=1, le=100, alias="maxOpenAll")
    open_delay_ms: int = Field(80, ge=0, le=2000, alias="openDelayMs")


class Link(_Aliased):
    id: str
    title: str
    url: str
    created_at: Number = Field(..., alias="createdAt", description="Epoch milliseconds.")
    order: Number = 0


class Folder(_Aliased):
    id: str
    name: str
    emoji: str = DEFAULT_EMOJI
    created_at: Number = Field(..., alias="createdAt", description="Epoch milliseconds.")
    order: Number = 0
    links: List[Link] = Field(default_factory=list)

    def find_link(self, link_id: str) -> Optional[Link]:
        return next((link for link in self.links if link.id == link_id), None)


class Document(_Aliased):
    version: int = SCHEMA_VERSION
    settings: OpenAllSettings = Field(default_factory=OpenAllSettings)
    active_folder_id: Optional[str] = Field(None, alias="activeFolderId")
    folders: List[Folder] = Field(default_factory=list)

    def find_folder(self, folder_id: Optional[str]) -> Optional[Folder]:
        if folder_id is None:
            return None
        return next((folder for folder in self.folders if folder.id == folder_id), None)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
