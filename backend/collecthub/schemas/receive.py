"""Result payloads and codes of the ingestion endpoints."""

from enum import IntEnum

from pydantic import BaseModel


class ReceiveCode(IntEnum):
    CREATED = 1
    UPDATED = 2
    BLOCKED_KEYWORD = 1001
    TYPE_UNBOUND = 1002
    NOTHING_TO_UPDATE = 1003
    NAME_REQUIRED = 2001
    TYPE_NOT_FOUND = 2002
    PASS_MISMATCH = 3002
    PASS_TOO_SHORT = 3003


class ReceiveResult(BaseModel):
    code: int
    msg: str
    vod_id: int | None = None
    art_id: int | None = None

    @classmethod
    def reject(cls, code: ReceiveCode, msg: str) -> "ReceiveResult":
        return cls(code=int(code), msg=msg)
