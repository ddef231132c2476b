import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class OperationKind(str, Enum):
    CREATE = "Create"
    ADD_PACKAGE = "AddPackage"
    REMOVE_PACKAGE = "RemovePackage"
    MODIFY_PACKAGE = "ModifyPackage"
    PROMOTE = "Promote"
    ROLLBACK = "Rollback"


class Operation(BaseModel):
    kind: OperationKind
    # package name for the *Package operations
    name: Optional[str] = None
    version: Optional[str] = None
    old_version: Optional[str] = None
    new_version: Optional[str] = None
    # snapshot hash rolled back to
    target_hash: Optional[str] = None

    @classmethod
    def create(cls):
        return cls(kind=OperationKind.CREATE)

    @classmethod
    def add_package(cls, name: str, version: Optional[str] = None):
        return cls(kind=OperationKind.ADD_PACKAGE, name=name, version=version)

    @classmethod
    def remove_package(cls, name: str):
        return cls(kind=OperationKind.REMOVE_PACKAGE, name=name)

    @classmethod
    def modify_package(cls, name: str, old_version: Optional[str], new_version: Optional[str]):
        return cls(
            kind=OperationKind.MODIFY_PACKAGE,
            name=name,
            old_version=old_version,
            new_version=new_version,
        )

    @classmethod
    def promote(cls):
        return cls(kind=OperationKind.PROMOTE)

    @classmethod
    def rollback(cls, target_hash: str):
        return cls(kind=OperationKind.ROLLBACK, target_hash=target_hash)

    def tag(self) -> str:
        """Short label used in log views, eg. `ADD flask`"""
        match self.kind:
            case OperationKind.ADD_PACKAGE:
                return f"ADD {self.name}"
            case OperationKind.REMOVE_PACKAGE:
                return f"REMOVE {self.name}"
            case OperationKind.MODIFY_PACKAGE:
                return f"MODIFY {self.name}"
            case _:
                return self.kind.name


class HistoryEntry(BaseModel):
    """One mutating operation on a container. Never edited once written."""
    hash: str
    container_name: str
    timestamp: datetime.datetime
    message: str
    operation: Operation
    parent_hash: Optional[str] = None
