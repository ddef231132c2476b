import os
from typing import Dict, List

from pydantic import BaseModel, Field


class WorkspaceSection(BaseModel):
    default_shell: str = Field(default_factory=lambda: os.environ.get("SHELL", "/bin/bash"))
    notes: List[str] = Field(default_factory=list)


class DefaultsSection(BaseModel):
    """Applied to every newly created container"""
    environment: Dict[str, str] = Field(default_factory=dict)
    toolchains: Dict[str, str] = Field(default_factory=dict)


class AdvancedSection(BaseModel):
    # use GNU stow for links/ when it is installed
    stow_enabled: bool = True
    # run garbage collection after delete and discard
    auto_cleanup: bool = True


class UiSection(BaseModel):
    log_level: str = "WARNING"


class Settings(BaseModel):
    """Contents of .sfc/workspace.toml"""
    workspace: WorkspaceSection = Field(default_factory=WorkspaceSection)
    defaults: DefaultsSection = Field(default_factory=DefaultsSection)
    advanced: AdvancedSection = Field(default_factory=AdvancedSection)
    ui: UiSection = Field(default_factory=UiSection)
