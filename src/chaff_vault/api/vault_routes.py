# Vault API - RESTful endpoints over VaultManager
#
# - Initialize/unlock/lock vault
# - CRUD operations for items
# - Export/import, audit log, chaff, password generator
# Item and chaff routes require the vault to be unlocked; the session
# stays server-side and is never serialized.

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..core.exceptions import ConfigInvalid, DecryptionFailed, ImportCorrupt, RecordNotFound
from ..vault import VaultManager, VaultSession
from ..vault.chaff import chaff_to_dict
from ..vault.generator import generate_password, is_strong_password, password_strength
from ..vault.records import ItemType
from .security import verify_session_token

_vault_manager: Optional[VaultManager] = None

router = APIRouter(prefix="/api/vault", tags=["vault"])


def get_vault_manager() -> VaultManager:
    """Get or create the process-wide VaultManager."""
    global _vault_manager
    if _vault_manager is None:
        _vault_manager = VaultManager.from_config()
    return _vault_manager


def set_vault_manager(manager: Optional[VaultManager]) -> None:
    """Replace the process-wide VaultManager (for testing)."""
    global _vault_manager
    _vault_manager = manager


def _require_session(manager: VaultManager) -> VaultSession:
    session = manager.session
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Vault is locked. Unlock vault first."
        )
    return session


# Request Models
class InitializeVaultRequest(BaseModel):
    master_password: str = Field(..., min_length=8)


class UnlockVaultRequest(BaseModel):
    master_password: str


class CreateItemRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: str = ItemType.PASSWORD.value
    data: Dict[str, Any] = Field(default_factory=dict)


class UpdateItemRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class AddChaffRequest(BaseModel):
    fields: Dict[str, Any]
    ratio: Optional[int] = Field(None, ge=0, le=20)


class RemoveChaffRequest(BaseModel):
    fields: Dict[str, Dict[str, Any]]


class GeneratePasswordRequest(BaseModel):
    length: int = 16
    uppercase: bool = True
    lowercase: bool = True
    numbers: bool = True
    symbols: bool = True
    exclude_similar: bool = False
    exclude_ambiguous: bool = False


class VaultStatusResponse(BaseModel):
    vault_exists: bool
    is_initialized: bool
    is_unlocked: bool
    state: str


# Endpoints

@router.get("/status", response_model=VaultStatusResponse)
async def get_vault_status(token: str = Depends(verify_session_token)):
    """Whether the vault exists and is unlocked."""
    manager = get_vault_manager()
    state = await manager.state()
    return VaultStatusResponse(
        vault_exists=await manager.is_vault_present(),
        is_initialized=await manager.is_vault_initialized(),
        is_unlocked=manager.session is not None,
        state=state.value,
    )


@router.post("/initialize")
async def initialize_vault(
    request: InitializeVaultRequest,
    token: str = Depends(verify_session_token)
):
    """
    Initialize new vault with master password.

    Password requirements:
    - At least 8 characters
    - At least one number, one uppercase letter, one special character
    """
    if not is_strong_password(request.master_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters with at least one number, "
                   "one uppercase letter, and one special character"
        )

    if not await get_vault_manager().initialize_vault(request.master_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to create vault"
        )

    return {"success": True, "message": "Vault created successfully!"}


@router.post("/unlock")
async def unlock_vault(
    request: UnlockVaultRequest,
    token: str = Depends(verify_session_token)
):
    """Unlock vault with master password."""
    result = await get_vault_manager().unlock_vault(request.master_password)

    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.message
        )

    return {"success": True, "message": result.message, "rotation_reset": result.rotation_reset}


@router.post("/lock")
async def lock_vault(token: str = Depends(verify_session_token)):
    """Lock vault (discard the in-memory key)."""
    await get_vault_manager().lock_vault()
    return {"success": True, "message": "Vault locked"}


@router.get("/items")
async def list_items(token: str = Depends(verify_session_token)):
    """List all readable items, newest first."""
    manager = get_vault_manager()
    session = _require_session(manager)
    items = await manager.list_items(session)
    return {"items": [item.to_dict() for item in items]}


@router.post("/items")
async def create_item(
    request: CreateItemRequest,
    token: str = Depends(verify_session_token)
):
    """Encrypt and store a new item."""
    manager = get_vault_manager()
    session = _require_session(manager)
    item_id = await manager.create_item(session, request.name, request.type, request.data)
    return {"success": True, "item_id": item_id}


@router.get("/items/{item_id}")
async def get_item(
    item_id: str,
    token: str = Depends(verify_session_token)
):
    """Get one decrypted item."""
    manager = get_vault_manager()
    session = _require_session(manager)

    try:
        item = await manager.read_item(session, item_id)
    except DecryptionFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to decrypt item"
        )

    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )

    return item.to_dict()


@router.patch("/items/{item_id}")
async def update_item(
    item_id: str,
    request: UpdateItemRequest,
    token: str = Depends(verify_session_token)
):
    """Merge changes into an item."""
    manager = get_vault_manager()
    session = _require_session(manager)
    updates = request.model_dump(exclude_unset=True)

    try:
        item = await manager.update_item(session, item_id, updates)
    except RecordNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )
    except DecryptionFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to decrypt item"
        )

    return item.to_dict()


@router.delete("/items/{item_id}")
async def delete_item(
    item_id: str,
    token: str = Depends(verify_session_token)
):
    """Delete an item."""
    manager = get_vault_manager()
    session = _require_session(manager)
    await manager.delete_item(session, item_id)
    return {"success": True, "message": "Item deleted successfully"}


# ── Export / Import / Audit ──────────────────────────────────────────

@router.get("/export")
async def export_vault(token: str = Depends(verify_session_token)):
    """Metadata and encrypted records as one JSON document."""
    return await get_vault_manager().export_vault()


@router.post("/import")
async def import_vault(
    document: Dict[str, Any],
    token: str = Depends(verify_session_token)
):
    """Merge an export document into this vault."""
    try:
        counts = await get_vault_manager().import_vault(document)
    except ImportCorrupt as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"success": True, **counts}


@router.get("/audit")
async def query_audit_log(
    limit: int = Query(100, ge=0, le=1000),
    offset: int = Query(0, ge=0),
    token: str = Depends(verify_session_token),
):
    """Page of audit events, newest first within the page."""
    events = await get_vault_manager().query_audit_log(limit=limit, offset=offset)
    return {"events": [event.to_dict() for event in events]}


# ── Chaff / Generator ────────────────────────────────────────────────

@router.post("/chaff")
async def add_chaff(
    request: AddChaffRequest,
    token: str = Depends(verify_session_token),
):
    """Mix real fields with decoys."""
    manager = get_vault_manager()
    session = _require_session(manager)
    obfuscated = manager.add_chaff(session, request.fields, request.ratio)
    return {"fields": chaff_to_dict(obfuscated)}


@router.post("/chaff/remove")
async def remove_chaff(
    request: RemoveChaffRequest,
    token: str = Depends(verify_session_token),
):
    """Recover the real fields from an obfuscated map."""
    manager = get_vault_manager()
    session = _require_session(manager)
    try:
        fields = manager.remove_chaff(session, request.fields)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"fields": fields}


@router.post("/generate")
async def generate(
    request: GeneratePasswordRequest,
    token: str = Depends(verify_session_token),
):
    """Generate a random password and report its strength."""
    try:
        password = generate_password(**request.model_dump())
    except ConfigInvalid as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"password": password, "strength": password_strength(password)}
