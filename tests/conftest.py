import os
import tempfile
from types import SimpleNamespace

_DB_DIR = tempfile.mkdtemp(prefix="crm-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.database.base import Base  # noqa: E402
from app.core.database.engine import AsyncSessionLocal, engine, get_db, init_db  # noqa: E402
from app.features.field_security.models import FieldPermission  # noqa: E402
from app.features.objects.models import FieldDefinition, ObjectDefinition  # noqa: E402
from app.features.organizations.models import Organization  # noqa: E402
from app.features.roles.models import Role  # noqa: E402
from app.features.users.dependencies import get_auth_lookup, get_current_user  # noqa: E402
from app.features.users.models import User  # noqa: E402
from app.main import app  # noqa: E402


@pytest.fixture
async def db():
    await init_db()
    async with AsyncSessionLocal() as session:
        yield session
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """Authenticate following requests as the given user (None = anonymous)."""
    def _login(user):
        user_id = user.id if user is not None else None
        
        async def current_user(db: AsyncSession = Depends(get_db)):
            return await db.get(User, user_id)
        
        def auth_lookup(db: AsyncSession = Depends(get_db)):
            async def lookup():
                return await db.get(User, user_id) if user_id else None
            return lookup
        
        app.dependency_overrides[get_current_user] = current_user
        app.dependency_overrides[get_auth_lookup] = auth_lookup
    
    return _login


def _user(name, organization, role=None, **kwargs):
    return User(
        appwrite_id=f"aw-{name}",
        email=f"{name}@example.com",
        name=name.title(),
        organization_id=organization.id,
        role_id=role.id if role is not None else None,
        **kwargs
    )


@pytest.fixture
async def crm(db):
    """
    One organization with a Lead object and four roles.
    
    The assistant role cannot see email or score and can read but not edit
    status; the other roles have no field rows.
    """
    org = Organization(name="Sunrise Doulas")
    other_org = Organization(name="Elsewhere")
    db.add_all([org, other_org])
    await db.flush()
    
    admin_role = Role(organization_id=org.id, name="admin", permissions={"*": ["*"]}, hierarchy_level=1)
    manager_role = Role(
        organization_id=org.id, name="manager",
        permissions={"Lead": ["create", "read", "update", "delete"]}, hierarchy_level=2
    )
    assistant_role = Role(
        organization_id=org.id, name="assistant",
        permissions={"Lead": ["create", "read", "update"]}, hierarchy_level=3
    )
    viewer_role = Role(organization_id=org.id, name="viewer", permissions={"Lead": ["read"]}, hierarchy_level=3)
    db.add_all([admin_role, manager_role, assistant_role, viewer_role])
    await db.flush()
    
    lead = ObjectDefinition(api_name="Lead", label="Lead", plural_label="Leads", is_standard=True, sharing_model="private")
    db.add(lead)
    await db.flush()
    
    def field(api_name, column_name, order, **kwargs):
        return FieldDefinition(
            object_definition_id=lead.id,
            api_name=api_name,
            label=api_name.replace("_", " ").title(),
            column_name=column_name,
            is_custom_field=column_name is None,
            display_order=order,
            **kwargs
        )
    
    fields = SimpleNamespace(
        name=field("name", "name", 0, is_standard=True),
        email=field("email", "email", 1, is_standard=True),
        status=field("status", "status", 2, is_standard=True),
        phone=field("phone_number", "phone", 3, is_standard=True),
        score=field("score", None, 4),
        medical_info=field("medical_info", None, 5, is_sensitive=True),
    )
    db.add_all(vars(fields).values())
    await db.flush()
    
    db.add_all([
        FieldPermission(organization_id=org.id, role_id=assistant_role.id,
                        field_definition_id=fields.email.id, is_visible=False, is_editable=False),
        FieldPermission(organization_id=org.id, role_id=assistant_role.id,
                        field_definition_id=fields.status.id, is_visible=True, is_editable=False),
        FieldPermission(organization_id=org.id, role_id=assistant_role.id,
                        field_definition_id=fields.score.id, is_visible=False, is_editable=False),
    ])
    
    users = SimpleNamespace(
        admin=_user("admin", org, admin_role),
        manager=_user("manager", org, manager_role),
        alice=_user("alice", org, assistant_role),
        bob=_user("bob", org, assistant_role),
        vera=_user("vera", org, viewer_role),
        norole=_user("norole", org),
        outsider=_user("outsider", other_org),
    )
    db.add_all(vars(users).values())
    await db.commit()
    
    return SimpleNamespace(
        org=org,
        other_org=other_org,
        roles=SimpleNamespace(admin=admin_role, manager=manager_role, assistant=assistant_role, viewer=viewer_role),
        lead=lead,
        fields=fields,
        users=users,
    )
