"""
Seed script to populate standard CRM objects and default roles.

Run this script after database initialization to create:
- Standard objects (Contact, Lead, Account) and their fields
- Default roles for every existing organization

Usage:
    python -m scripts.seed_crm
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.objects.models import ObjectDefinition, FieldDefinition
from app.features.organizations.models import Organization
from app.features.roles.models import Role
from app.utils import get_logger


log = get_logger(__name__)


# (api_name, label, data_type, column_name, is_required, is_sensitive)
STANDARD_OBJECTS = {
    "Contact": {
        "label": "Contact",
        "plural_label": "Contacts",
        "sharing_model": "private",
        "fields": [
            ("first_name", "First Name", "text", "first_name", False, False),
            ("last_name", "Last Name", "text", "last_name", True, False),
            ("email", "Email", "email", "email", False, False),
            ("phone", "Phone", "phone", "phone", False, False),
            ("due_date", "Due Date", "date", "due_date", False, False),
            ("emergency_contact", "Emergency Contact", "text", None, False, True),
            ("medical_info", "Medical Info", "textarea", None, False, True),
        ],
    },
    "Lead": {
        "label": "Lead",
        "plural_label": "Leads",
        "sharing_model": "read",
        "fields": [
            ("name", "Name", "text", "name", True, False),
            ("email", "Email", "email", "email", False, False),
            ("status", "Status", "picklist", "status", False, False),
            ("source", "Source", "text", "source", False, False),
            ("birth_preferences", "Birth Preferences", "textarea", None, False, True),
        ],
    },
    "Account": {
        "label": "Account",
        "plural_label": "Accounts",
        "sharing_model": "read",
        "fields": [
            ("name", "Account Name", "text", "name", True, False),
            ("industry", "Industry", "text", "industry", False, False),
            ("annual_revenue", "Annual Revenue", "currency", "annual_revenue", False, False),
            ("payment_info", "Payment Info", "textarea", None, False, True),
        ],
    },
}


DEFAULT_ROLES = {
    config.ADMIN_ROLE_NAME: {
        "description": "Organization administrator with all permissions",
        "hierarchy_level": 1,
        "permissions": {"*": ["*"]},
    },
    "manager": {
        "description": "Team manager; sees records owned by lower levels",
        "hierarchy_level": 2,
        "permissions": {
            "Contact": ["create", "read", "update", "delete"],
            "Lead": ["create", "read", "update", "delete"],
            "Account": ["create", "read", "update"],
        },
    },
    "assistant": {
        "description": "Care assistant with access to own records",
        "hierarchy_level": 3,
        "permissions": {
            "Contact": ["create", "read", "update"],
            "Lead": ["read"],
        },
    },
}


async def seed_objects(db: AsyncSession):
    """Create the standard objects and their fields, skipping existing ones."""
    log.info("Creating standard objects...")
    
    for api_name, object_config in STANDARD_OBJECTS.items():
        stmt = select(ObjectDefinition).where(
            ObjectDefinition.api_name == api_name,
            ObjectDefinition.organization_id.is_(None)
        )
        result = await db.execute(stmt)
        if result.scalars().first():
            log.debug("Object '%s' already exists, skipping", api_name)
            continue
        
        obj = ObjectDefinition(
            api_name=api_name,
            label=object_config["label"],
            plural_label=object_config["plural_label"],
            sharing_model=object_config["sharing_model"],
            is_standard=True,
        )
        db.add(obj)
        await db.flush()
        
        for order, (field_api, label, data_type, column, required, sensitive) in enumerate(object_config["fields"]):
            db.add(FieldDefinition(
                object_definition_id=obj.id,
                api_name=field_api,
                label=label,
                data_type=data_type,
                column_name=column,
                is_custom_field=column is None,
                is_required=required,
                is_standard=column is not None,
                is_sensitive=sensitive,
                display_order=order,
            ))
        log.info("Created object %s with %d fields", api_name, len(object_config["fields"]))
    
    await db.commit()


async def seed_roles(db: AsyncSession):
    """Create the default roles in every organization that lacks them."""
    log.info("Creating default roles...")
    
    result = await db.execute(select(Organization))
    organizations = result.scalars().all()
    
    for organization in organizations:
        for role_name, role_config in DEFAULT_ROLES.items():
            stmt = select(Role).where(
                Role.organization_id == organization.id,
                Role.name == role_name
            )
            existing = await db.execute(stmt)
            if existing.scalars().first():
                log.debug("Role '%s' already exists in %s, skipping", role_name, organization.name)
                continue
            
            db.add(Role(organization_id=organization.id, name=role_name, **role_config))
            log.info("Created role '%s' in %s", role_name, organization.name)
    
    await db.commit()
    log.info("Default roles created for %d organizations", len(organizations))


async def main():
    """Main function to seed objects and roles."""
    log.info("Starting CRM seeding...")
    
    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()
    
    async for db in get_db():
        try:
            await seed_objects(db)
            await seed_roles(db)
            log.info("CRM seeding completed successfully!")
        except Exception as e:
            log.error("Error seeding CRM data: %s", e, exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
