"""
Sharing persistence and record access checks.

check_record_access gathers everything the pure evaluator needs from the
database: the object's sharing model, the rules and manual shares that could
apply, and the hierarchy levels of the user and the record owner.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from app.features.users.models import User
from app.features.roles.models import Role
from app.features.objects.models import ObjectDefinition
from app.features.objects.service import get_object_by_api_name
from app.features.records.models import CrmRecord
from app.features.sharing.models import SharingRule, ManualShare
from app.features.sharing.evaluator import (
    RecordSharingContext,
    SharingEvaluation,
    UserSharingContext,
    evaluate_record_access,
    is_share_expired,
    satisfies_access,
    validate_sharing_criteria,
)
from app.utils import get_logger


log = get_logger(__name__)


# =====================================================
# CONTEXTS
# =====================================================

async def _get_role(db: AsyncSession, role_id: Optional[str]) -> Optional[Role]:
    return await db.get(Role, role_id) if role_id else None


async def get_user_sharing_context(db: AsyncSession, user: User) -> UserSharingContext:
    role = await _get_role(db, user.role_id)
    return UserSharingContext(
        user_id=user.id,
        role_id=user.role_id,
        organization_id=user.organization_id,
        hierarchy_level=role.hierarchy_level if role is not None else None,
    )


async def _owner_role(db: AsyncSession, owner_id: Optional[str]) -> Optional[Role]:
    if not owner_id:
        return None
    owner = await db.get(User, owner_id)
    if owner is None:
        return None
    return await _get_role(db, owner.role_id)


async def _applicable_rules(
    db: AsyncSession,
    organization_id: str,
    object_definition_id: str,
    user: UserSharingContext
) -> List[SharingRule]:
    targets = [and_(SharingRule.share_with_type == "user", SharingRule.share_with_id == user.user_id)]
    if user.role_id:
        targets.append(and_(SharingRule.share_with_type == "role", SharingRule.share_with_id == user.role_id))
    
    result = await db.execute(
        select(SharingRule).where(
            SharingRule.organization_id == organization_id,
            SharingRule.object_definition_id == object_definition_id,
            SharingRule.is_active == True,
            or_(*targets),
        )
    )
    return list(result.scalars().all())


async def list_manual_shares(
    db: AsyncSession,
    organization_id: Optional[str],
    object_api_name: str,
    record_id: str
) -> List[ManualShare]:
    result = await db.execute(
        select(ManualShare)
        .where(
            ManualShare.organization_id == organization_id,
            ManualShare.object_api_name == object_api_name,
            ManualShare.record_id == record_id,
        )
        .order_by(ManualShare.created_at)
    )
    return list(result.scalars().all())


# =====================================================
# ACCESS CHECKS
# =====================================================

async def evaluate_access(
    db: AsyncSession,
    user: User,
    object_api_name: str,
    record_id: str,
    owner_id: Optional[str],
    field_values: Optional[Mapping[str, Any]] = None
) -> SharingEvaluation:
    """
    Every access grant the user holds on a record.
    
    When the record is in the record store, its organization and field values
    are taken from there; otherwise the record is assumed to belong to the
    user's organization and criteria rules see only the given field values.
    """
    user_ctx = await get_user_sharing_context(db, user)
    
    record = await db.get(CrmRecord, record_id)
    if record is not None and record.object_api_name == object_api_name:
        record_organization_id = record.organization_id
        if field_values is None:
            field_values = record.field_values()
    else:
        record_organization_id = user.organization_id
    
    owner_role = await _owner_role(db, owner_id)
    record_ctx = RecordSharingContext(
        record_id=record_id,
        object_api_name=object_api_name,
        owner_id=owner_id,
        organization_id=record_organization_id,
        field_values=field_values,
        owner_role_id=owner_role.id if owner_role is not None else None,
    )
    
    obj = await get_object_by_api_name(db, object_api_name, record_organization_id)
    sharing_model = obj.sharing_model if obj is not None else "private"
    rules = (
        await _applicable_rules(db, record_organization_id, obj.id, user_ctx)
        if obj is not None and record_organization_id else []
    )
    shares = await list_manual_shares(db, record_organization_id, object_api_name, record_id)
    
    return evaluate_record_access(
        record_ctx,
        user_ctx,
        sharing_model,
        sharing_rules=rules,
        manual_shares=shares,
        owner_hierarchy_level=owner_role.hierarchy_level if owner_role is not None else None,
    )


async def check_record_access(
    db: AsyncSession,
    user: User,
    object_api_name: str,
    record_id: str,
    owner_id: Optional[str],
    access_type: str = "read",
    field_values: Optional[Mapping[str, Any]] = None
) -> bool:
    """Whether the user's best grant on the record satisfies read or write."""
    if not user.organization_id:
        log.debug("User %s has no organization - no record access", user.id)
        return False
    
    evaluation = await evaluate_access(db, user, object_api_name, record_id, owner_id, field_values)
    allowed = satisfies_access(evaluation.access_level, access_type)
    log.debug(
        "Record access %s on %s:%s for user %s: %s (level=%s source=%s)",
        access_type, object_api_name, record_id, user.id, allowed,
        evaluation.access_level, evaluation.access_source
    )
    return allowed


async def get_record_sharing_info(
    db: AsyncSession,
    organization_id: str,
    object_api_name: str,
    record_id: str,
    owner_id: Optional[str]
) -> List[Dict[str, str]]:
    """Who holds access to a record through ownership or manual shares."""
    info: List[Dict[str, str]] = []
    users_by_id: Dict[str, User] = {}
    
    async def load_user(user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        if user_id not in users_by_id:
            users_by_id[user_id] = await db.get(User, user_id)
        return users_by_id[user_id]
    
    owner = await load_user(owner_id)
    if owner is not None:
        info.append(dict(
            user_id=owner.id, user_name=owner.name, user_email=owner.email,
            access_level="full_access", access_source="owner", source_name="Record Owner",
        ))
    
    for share in await list_manual_shares(db, organization_id, object_api_name, record_id):
        if is_share_expired(share.expires_at):
            continue
        
        if share.share_with_type == "user":
            target = await load_user(share.share_with_id)
            if target is None:
                continue
            sharer = await load_user(share.shared_by)
            info.append(dict(
                user_id=target.id, user_name=target.name, user_email=target.email,
                access_level=share.access_level, access_source="manual_share",
                source_name=f"Manually shared by {sharer.name if sharer else 'unknown'}",
            ))
        elif share.share_with_type == "role":
            role = await _get_role(db, share.share_with_id)
            if role is None:
                continue
            result = await db.execute(
                select(User).where(
                    User.role_id == role.id,
                    User.organization_id == organization_id,
                    User.is_active == True,
                )
            )
            for member in result.scalars().all():
                if member.id == owner_id:
                    continue
                info.append(dict(
                    user_id=member.id, user_name=member.name, user_email=member.email,
                    access_level=share.access_level, access_source="manual_share",
                    source_name=f"Via role: {role.name}",
                ))
    
    return info


# =====================================================
# SHARING RULES
# =====================================================

def _check_rule_shape(rule_type: str, criteria: Optional[Mapping[str, Any]]) -> None:
    if rule_type != "criteria":
        return
    valid, error = validate_sharing_criteria(criteria)
    if not valid:
        raise ValidationFailedError(error)


async def list_sharing_rules(
    db: AsyncSession,
    organization_id: str,
    object_api_name: Optional[str] = None
) -> List[SharingRule]:
    stmt = select(SharingRule).where(SharingRule.organization_id == organization_id)
    if object_api_name:
        obj = await get_object_by_api_name(db, object_api_name, organization_id)
        if obj is None:
            return []
        stmt = stmt.where(SharingRule.object_definition_id == obj.id)
    result = await db.execute(stmt.order_by(SharingRule.created_at.desc()))
    return list(result.scalars().all())


async def get_sharing_rule(db: AsyncSession, organization_id: str, rule_id: str) -> SharingRule:
    rule = await db.get(SharingRule, rule_id)
    if rule is None or rule.organization_id != organization_id:
        raise NotFoundError("Sharing rule not found")
    return rule


async def create_sharing_rule(
    db: AsyncSession,
    organization_id: str,
    created_by: str,
    object_api_name: str,
    values: Dict[str, Any]
) -> SharingRule:
    obj = await get_object_by_api_name(db, object_api_name, organization_id)
    if obj is None:
        raise NotFoundError("Object not found")
    _check_rule_shape(values.get("rule_type", "criteria"), values.get("criteria"))
    
    rule = SharingRule(
        organization_id=organization_id,
        object_definition_id=obj.id,
        created_by=created_by,
        **values,
    )
    db.add(rule)
    await db.flush()
    return rule


async def update_sharing_rule(
    db: AsyncSession,
    organization_id: str,
    rule_id: str,
    updates: Dict[str, Any]
) -> SharingRule:
    rule = await get_sharing_rule(db, organization_id, rule_id)
    if "criteria" in updates:
        _check_rule_shape(rule.rule_type, updates["criteria"])
    for key, value in updates.items():
        setattr(rule, key, value)
    await db.flush()
    return rule


async def toggle_sharing_rule_active(
    db: AsyncSession,
    organization_id: str,
    rule_id: str,
    is_active: bool
) -> SharingRule:
    return await update_sharing_rule(db, organization_id, rule_id, {"is_active": is_active})


async def delete_sharing_rule(db: AsyncSession, organization_id: str, rule_id: str) -> None:
    rule = await get_sharing_rule(db, organization_id, rule_id)
    await db.delete(rule)
    await db.flush()


# =====================================================
# MANUAL SHARES
# =====================================================

async def get_manual_share(db: AsyncSession, organization_id: str, share_id: str) -> ManualShare:
    share = await db.get(ManualShare, share_id)
    if share is None or share.organization_id != organization_id:
        raise NotFoundError("Manual share not found")
    return share


async def create_manual_share(
    db: AsyncSession,
    organization_id: str,
    shared_by: str,
    object_api_name: str,
    record_id: str,
    values: Dict[str, Any]
) -> ManualShare:
    share = ManualShare(
        organization_id=organization_id,
        object_api_name=object_api_name,
        record_id=record_id,
        shared_by=shared_by,
        **values,
    )
    db.add(share)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("This record is already shared with this user/role")
    return share


async def update_manual_share(
    db: AsyncSession,
    organization_id: str,
    share_id: str,
    updates: Dict[str, Any]
) -> ManualShare:
    share = await get_manual_share(db, organization_id, share_id)
    for key, value in updates.items():
        setattr(share, key, value)
    await db.flush()
    return share


async def delete_manual_share(db: AsyncSession, organization_id: str, share_id: str) -> None:
    share = await get_manual_share(db, organization_id, share_id)
    await db.delete(share)
    await db.flush()


# =====================================================
# OBJECT SETTINGS & TARGETS
# =====================================================

async def get_object_sharing_settings(
    db: AsyncSession,
    organization_id: str,
    object_api_name: str
) -> Tuple[ObjectDefinition, List[SharingRule]]:
    obj = await get_object_by_api_name(db, object_api_name, organization_id)
    if obj is None:
        raise NotFoundError("Object not found")
    
    result = await db.execute(
        select(SharingRule).where(
            SharingRule.organization_id == organization_id,
            SharingRule.object_definition_id == obj.id,
            SharingRule.is_active == True,
        )
    )
    return obj, list(result.scalars().all())


async def update_object_sharing_model(
    db: AsyncSession,
    organization_id: str,
    object_api_name: str,
    sharing_model: str
) -> ObjectDefinition:
    obj = await get_object_by_api_name(db, object_api_name, organization_id)
    if obj is None:
        raise NotFoundError("Object not found")
    obj.sharing_model = sharing_model
    await db.flush()
    log.info("Sharing model of %s set to %s", object_api_name, sharing_model)
    return obj


async def get_share_targets(db: AsyncSession, organization_id: str) -> Tuple[List[User], List[Role]]:
    users = await db.execute(
        select(User)
        .where(User.organization_id == organization_id, User.is_active == True)
        .order_by(User.name)
    )
    roles = await db.execute(
        select(Role).where(Role.organization_id == organization_id).order_by(Role.name)
    )
    return list(users.scalars().all()), list(roles.scalars().all())
