import datetime
import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sfc._src.utils import utcnow


class PackageSpec(BaseModel):
    name: str
    version: Optional[str] = None
    # stable, unstable, etc
    channel: Optional[str] = "stable"
    # nixpkgs, github, url
    source: str = "nixpkgs"

    def __str__(self):
        return f"{self.name}@{self.version or 'latest'}"

    def sort_key(self):
        return (self.name, self.version or "", self.source, self.channel or "")


class ContainerConfig(BaseModel):
    """Persisted configuration of a single container"""
    name: str
    created_at: datetime.datetime = Field(default_factory=utcnow)
    packages: List[PackageSpec] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    toolchains: Dict[str, str] = Field(default_factory=dict)
    shell: str = Field(default_factory=lambda: os.environ.get("SHELL", "/bin/bash"))

    def find_package(self, name: str) -> Optional[PackageSpec]:
        for pkg in self.packages:
            if pkg.name == name:
                return pkg
        return None

    def add_package(self, spec: PackageSpec) -> Optional[PackageSpec]:
        """Add or replace a package, returning the replaced spec if any"""
        previous = self.find_package(spec.name)
        self.packages = [pkg for pkg in self.packages if pkg.name != spec.name]
        self.packages.append(spec)
        self.packages.sort(key=lambda pkg: pkg.name)
        return previous

    def remove_package(self, name: str) -> bool:
        before = len(self.packages)
        self.packages = [pkg for pkg in self.packages if pkg.name != name]
        return len(self.packages) < before
