"""Pydantic schemas for type bindings."""

from pydantic import BaseModel


class TypeBindingRead(BaseModel):
    id: int
    source_id: int
    remote_type_id: int
    remote_type_name: str = ""
    local_type_id: int
    local_type_name: str | None = None


class TypeBindingSave(BaseModel):
    source_id: int
    remote_type_id: int
    remote_type_name: str = ""
    local_type_id: int


class TypeBindingItem(BaseModel):
    remote_type_id: int
    remote_type_name: str = ""
    local_type_id: int


class TypeBindingBatch(BaseModel):
    source_id: int
    bindings: list[TypeBindingItem] = []


class RemoteType(BaseModel):
    type_id: int
    type_name: str
    type_pid: int = 0


class RemoteTypesResponse(BaseModel):
    ok: bool
    msg: str | None = None
    types: list[RemoteType] = []
