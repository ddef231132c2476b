import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sfc._src.models.container import PackageSpec


class SnapshotInfo(BaseModel):
    hash: str
    dir_name: str
    container_name: str
    timestamp: datetime.datetime
    description: str
    is_active: bool


class FileChangeSummary(BaseModel):
    file: str
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class Transition(BaseModel):
    """Result of repointing a stable alias (promote or rollback)"""
    container_name: str
    source: str
    old_hash: Optional[str] = None
    new_hash: str
    changes: List[FileChangeSummary] = Field(default_factory=list)
    message: str
    history_hash: Optional[str] = None


class ShareMetadata(BaseModel):
    sfc_version: str
    platform_os: str
    platform_arch: str
    created_by: str
    shared_at: datetime.datetime


class ShareInfo(BaseModel):
    """Serializable summary of a snapshot, enough to recreate it elsewhere"""
    hash: str
    container_name: str
    description: str
    packages: List[PackageSpec] = Field(default_factory=list)
    toolchains: Dict[str, str] = Field(default_factory=dict)
    environment: Dict[str, str] = Field(default_factory=dict)
    metadata: ShareMetadata

    def recreate_command(self) -> str:
        return f"sfc create {self.container_name} --from {self.hash}"
