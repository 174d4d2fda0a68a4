"""Key-value API endpoints — all protected by the auth gate.

Provides (prefix /api/v1/keyvalue):
  POST   ""               — create {key, value}               201
  GET    ""               — list, ?include_hidden=true to include hidden
  GET    /{key}           — fetch one entry                    404 if absent
  PUT    /{key}           — replace value {value}              404 if absent
  PATCH  /{key}/status    — {status: unread|read|archived}     404 if absent
  PATCH  /{key}/hidden    — {hidden: bool}                     404 if absent
  DELETE /{key}           — idempotent delete
  GET    /{key}/status    — {key, status, exists}              404 if absent
  GET    /{key}/exists    — {key, exists}

Malformed bodies (missing field, status outside the enum) are rejected with 400
by the RequestValidationError handler before the store is touched.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from homectrl.auth.gate import authenticate_request
from homectrl.errors import NotFoundError
from homectrl.keyvalue.models import EntryStatus
from homectrl.keyvalue.store import KeyValueStore

router = APIRouter(
    prefix="/keyvalue",
    tags=["keyvalue"],
    dependencies=[Depends(authenticate_request)],
)


# ─── Request Models ───────────────────────────────────────────────────────────


class CreateEntryRequest(BaseModel):
    key: str = Field(min_length=1)
    value: str = Field(min_length=1)


class UpdateValueRequest(BaseModel):
    value: str = Field(min_length=1)


class UpdateStatusRequest(BaseModel):
    status: EntryStatus


class UpdateHiddenRequest(BaseModel):
    hidden: bool


def _store(request: Request) -> KeyValueStore:
    return request.app.state.kv_store


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.post("", status_code=201)
async def create_entry(body: CreateEntryRequest, request: Request) -> dict:
    entry = await _store(request).create(body.key, body.value)
    return entry.to_dict()


@router.get("")
async def list_entries(request: Request, include_hidden: bool = False) -> list:
    """Entries newest first. Hidden entries are omitted unless include_hidden=true."""
    entries = await _store(request).list(include_hidden=include_hidden)
    return [entry.to_dict() for entry in entries]


@router.get("/{key}")
async def get_entry(key: str, request: Request) -> dict:
    entry = await _store(request).get(key)
    if entry is None:
        raise NotFoundError()
    return entry.to_dict()


@router.put("/{key}")
async def update_entry(key: str, body: UpdateValueRequest, request: Request) -> dict:
    entry = await _store(request).update(key, body.value)
    return entry.to_dict()


@router.patch("/{key}/status")
async def update_status(key: str, body: UpdateStatusRequest, request: Request) -> dict:
    entry = await _store(request).set_status(key, body.status)
    return entry.to_dict()


@router.patch("/{key}/hidden")
async def update_hidden(key: str, body: UpdateHiddenRequest, request: Request) -> dict:
    entry = await _store(request).set_hidden(key, body.hidden)
    return entry.to_dict()


@router.delete("/{key}")
async def delete_entry(key: str, request: Request) -> dict:
    await _store(request).delete(key)
    return {"message": "Key-value pair deleted successfully"}


@router.get("/{key}/status")
async def check_status(key: str, request: Request) -> dict:
    status = await _store(request).check_status(key)
    if status is None:
        raise NotFoundError()
    return {"key": key, "status": status.value, "exists": True}


@router.get("/{key}/exists")
async def check_exists(key: str, request: Request) -> dict:
    return {"key": key, "exists": await _store(request).check_exists(key)}
