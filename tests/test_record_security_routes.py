from app.core.database.engine import get_session_factory
from app.main import app


class _UnreachableSession:
    async def __aenter__(self):
        return self
    
    async def __aexit__(self, *exc_info):
        return False
    
    async def get(self, *args, **kwargs):
        raise RuntimeError("database unreachable")
    
    async def execute(self, *args, **kwargs):
        raise RuntimeError("database unreachable")


async def _stored_lead(client, login, owner):
    login(owner)
    response = await client.post("/records/Lead", json={"data": {"name": "Mara"}})
    assert response.status_code == 201
    return response.json()["id"]


async def test_anonymous_request_gets_empty_context(client, login, crm):
    login(None)
    response = await client.get("/record-security/Lead/rec1")
    
    assert response.status_code == 200
    assert response.json() == {
        "userId": None,
        "isOwner": False,
        "canRead": False,
        "canEdit": False,
        "canDelete": False,
        "canManageSharing": False,
        "visibleFieldIds": [],
        "editableFieldIds": [],
        "isLoaded": False,
    }


async def test_missing_credentials_without_override_fail_closed(client, crm):
    response = await client.get("/record-security/Lead/rec1")
    assert response.status_code == 200
    assert response.json()["isLoaded"] is False


async def test_owner_context(client, login, crm):
    record_id = await _stored_lead(client, login, crm.users.alice)
    
    body = (await client.get(f"/record-security/Lead/{record_id}")).json()
    
    assert body["isLoaded"] is True
    assert body["isOwner"] is True
    assert body["canManageSharing"] is True
    assert body["visibleFieldIds"] == sorted(f.id for f in vars(crm.fields).values())


async def test_stored_owner_beats_claimed_owner(client, login, crm):
    record_id = await _stored_lead(client, login, crm.users.alice)
    
    login(crm.users.bob)
    body = (await client.get(f"/record-security/Lead/{record_id}", params={"owner_id": crm.users.bob.id})).json()
    
    assert body["isOwner"] is False
    assert body["canRead"] is False
    assert crm.fields.email.id not in body["visibleFieldIds"]


async def test_external_record_uses_claimed_owner(client, login, crm):
    login(crm.users.bob)
    body = (await client.get("/record-security/Lead/external-1", params={"owner_id": crm.users.bob.id})).json()
    
    assert body["isOwner"] is True
    assert body["canEdit"] is True


async def test_database_failure_returns_empty_context(client, login, crm):
    login(crm.users.alice)
    app.dependency_overrides[get_session_factory] = lambda: _UnreachableSession
    
    response = await client.get("/record-security/Lead/rec1")
    
    assert response.status_code == 200
    body = response.json()
    assert body["isLoaded"] is False
    assert body["userId"] is None
    assert body["canRead"] is False
    assert body["visibleFieldIds"] == []
