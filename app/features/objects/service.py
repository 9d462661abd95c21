"""
Object metadata lookups shared by field security, sharing and records.
"""
from typing import List, Optional, Sequence, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.objects.models import ObjectDefinition, FieldDefinition


def _visible_to(organization_id: Optional[str]):
    # Standard objects (null organization) are visible to every organization
    return or_(
        ObjectDefinition.organization_id == organization_id,
        ObjectDefinition.organization_id.is_(None)
    )


async def get_object_by_api_name(
    db: AsyncSession,
    api_name: str,
    organization_id: Optional[str] = None
) -> Optional[ObjectDefinition]:
    """
    Find an active object by api name.
    
    An organization's own object shadows a standard object with the same name.
    """
    stmt = (
        select(ObjectDefinition)
        .where(
            ObjectDefinition.api_name == api_name,
            ObjectDefinition.is_active == True,
            _visible_to(organization_id),
        )
        .order_by(ObjectDefinition.organization_id.is_(None))
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_active_fields(db: AsyncSession, object_definition_id: str) -> List[FieldDefinition]:
    """Active fields of an object in display order."""
    stmt = (
        select(FieldDefinition)
        .where(
            FieldDefinition.object_definition_id == object_definition_id,
            FieldDefinition.is_active == True,
        )
        .order_by(FieldDefinition.display_order, FieldDefinition.api_name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_field_ids(db: AsyncSession, object_definition_id: str) -> List[str]:
    """Ids of every field of an object, active or not."""
    result = await db.execute(
        select(FieldDefinition.id).where(FieldDefinition.object_definition_id == object_definition_id)
    )
    return list(result.scalars().all())


async def list_objects_with_field_counts(
    db: AsyncSession,
    organization_id: Optional[str]
) -> Sequence[Tuple[ObjectDefinition, int]]:
    """Active objects ordered by label, each with its active field count."""
    field_count = (
        select(
            FieldDefinition.object_definition_id.label("object_definition_id"),
            func.count(FieldDefinition.id).label("field_count"),
        )
        .where(FieldDefinition.is_active == True)
        .group_by(FieldDefinition.object_definition_id)
        .subquery()
    )
    stmt = (
        select(ObjectDefinition, func.coalesce(field_count.c.field_count, 0))
        .outerjoin(field_count, field_count.c.object_definition_id == ObjectDefinition.id)
        .where(ObjectDefinition.is_active == True, _visible_to(organization_id))
        .order_by(ObjectDefinition.label)
    )
    result = await db.execute(stmt)
    return [(obj, count) for obj, count in result.all()]
