from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import assert_never


class Role(StrEnum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    STAFF = "staff"
    USER = "user"


class Module(StrEnum):
    USERS = "users"
    ROOMS = "rooms"
    RESIDENTS = "residents"
    VISITORS = "visitors"
    BILLINGS = "billings"


class Action(StrEnum):
    READ = "read"
    WRITE = "write"


class DenyKind(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class SessionContext:
    user_id: int
    username: str
    role: Role
    expires_at: datetime


@dataclass(frozen=True)
class Capability:
    action: Action
    module: Module

    def __str__(self) -> str:
        return f"{self.module}.{self.action}"


def read(module: Module) -> Capability:
    return Capability(Action.READ, module)


def write(module: Module) -> Capability:
    return Capability(Action.WRITE, module)


@dataclass(frozen=True)
class Admit:
    pass


@dataclass(frozen=True)
class Deny:
    kind: DenyKind
    reason: str


Decision = Admit | Deny


def _staff_decision(capability: Capability) -> Decision:
    match capability.action:
        case Action.READ:
            return Admit()
        case Action.WRITE:
            return Deny(DenyKind.FORBIDDEN, "Staff has read-only access")
        case _:
            assert_never(capability.action)


def _admin_decision(capability: Capability) -> Decision:
    if capability.action is Action.WRITE and capability.module is Module.USERS:
        return Deny(DenyKind.FORBIDDEN, "Admin cannot modify users")
    return Admit()


def authorize(session: SessionContext | None, capability: Capability) -> Decision:
    """Pure role x module decision; runs before any storage I/O.

        superadmin  read: yes  write: yes  write users: yes
        admin       read: yes  write: yes  write users: no
        staff       read: yes  write: no   write users: no
        user        read: no   write: no   write users: no
    """
    if session is None:
        return Deny(DenyKind.UNAUTHENTICATED, "Not authenticated")

    match session.role:
        case Role.SUPERADMIN:
            return Admit()
        case Role.ADMIN:
            return _admin_decision(capability)
        case Role.STAFF:
            return _staff_decision(capability)
        case Role.USER:
            return Deny(DenyKind.FORBIDDEN, "Forbidden")
        case _:
            assert_never(session.role)
