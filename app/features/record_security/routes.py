"""
Record security context route.

Unlike the rest of the API this endpoint never answers 401: an anonymous or
unverifiable caller receives the empty (nothing allowed) context.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.engine import get_session_factory
from app.features.users.dependencies import AuthLookup, get_auth_lookup
from app.features.record_security.context import (
    RecordContext,
    SerializedSecurityContext,
    get_record_security_context,
    serialize_security_context,
)


router = APIRouter()


@router.get(
    "/{object_api_name}/{record_id}",
    response_model=SerializedSecurityContext,
    response_model_by_alias=True
)
async def read_record_security_context(
    object_api_name: str,
    record_id: str,
    auth_lookup: Annotated[AuthLookup, Depends(get_auth_lookup)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    owner_id: Optional[str] = None
):
    """
    Capabilities and visible/editable field ids of the caller on one record.
    
    For records in the record store the stored owner is used. owner_id only
    describes records kept elsewhere and is taken as given, so callers must
    pass an owner they obtained from a trusted server-side source; a
    claimed owner receives owner capabilities on such records.
    """
    context = await get_record_security_context(
        RecordContext(object_api_name=object_api_name, record_id=record_id, owner_id=owner_id),
        auth_lookup,
        session_factory,
    )
    return serialize_security_context(context)
