async def test_field_permission_writes_are_admin_only_and_audited(client, login, crm):
    payload = {
        "role_id": crm.roles.viewer.id,
        "field_definition_id": crm.fields.phone.id,
        "is_visible": False,
        "is_editable": True,
    }
    login(crm.users.alice)
    assert (await client.put("/field-security/permissions", json=payload)).status_code == 403
    
    login(crm.users.admin)
    response = await client.put("/field-security/permissions", json=payload)
    assert response.status_code == 200
    assert response.json()["is_visible"] is False
    assert response.json()["is_editable"] is False
    
    logs = (await client.get("/roles/audit-logs", params={"resource_type": "field_permission"})).json()
    assert logs["total"] == 1
    assert logs["items"][0]["user_id"] == crm.users.admin.id


async def test_matrix_and_accessible_fields(client, login, crm):
    login(crm.users.alice)
    matrix = (await client.get(f"/field-security/objects/Lead/roles/{crm.roles.assistant.id}/matrix")).json()
    by_name = {entry["api_name"]: entry for entry in matrix["fields"]}
    assert by_name["email"]["is_visible"] is False
    assert by_name["status"]["is_editable"] is False
    assert by_name["name"]["has_explicit_permission"] is False
    
    accessible = (await client.get("/field-security/objects/Lead/accessible")).json()
    assert "email" not in [f["api_name"] for f in accessible["visible_fields"]]
    assert accessible["access"]["status"] == {"can_read": True, "can_edit": False}
    
    can_edit = (await client.get(f"/field-security/fields/{crm.fields.status.id}/can-edit")).json()
    assert can_edit["can_edit"] is False


async def test_bulk_update_reset_and_copy(client, login, crm):
    login(crm.users.admin)
    response = await client.put(f"/field-security/objects/Lead/roles/{crm.roles.viewer.id}", json={
        "permissions": [
            {"field_definition_id": crm.fields.name.id, "is_visible": True, "is_editable": False},
            {"field_definition_id": crm.fields.score.id, "is_visible": False, "is_editable": False},
        ]
    })
    assert response.json() == {"count": 2}
    
    response = await client.delete(f"/field-security/objects/Lead/roles/{crm.roles.viewer.id}")
    assert response.json() == {"count": 2}
    
    response = await client.post(
        f"/field-security/roles/{crm.roles.assistant.id}/copy",
        json={"target_role_id": crm.roles.viewer.id, "object_api_name": "Lead"},
    )
    assert response.json() == {"count": 3}
    
    rows = (await client.get(f"/field-security/roles/{crm.roles.viewer.id}/permissions")).json()
    assert len(rows) == 3


async def test_security_context_endpoint(client, login, crm):
    login(crm.users.manager)
    body = (await client.get("/field-security/me")).json()
    
    assert body["is_admin"] is False
    assert body["hierarchy_level"] == 2


async def test_sharing_rule_lifecycle(client, login, crm):
    login(crm.users.admin)
    rule = {
        "object_api_name": "Lead",
        "name": "Hot leads",
        "access_level": "read",
        "share_with_type": "role",
        "share_with_id": crm.roles.viewer.id,
        "rule_type": "criteria",
        "criteria": {"match_type": "sometimes", "conditions": []},
    }
    response = await client.post("/sharing/rules", json=rule)
    assert response.status_code == 400
    assert response.json() == {"detail": 'match_type must be "all" or "any"'}
    
    rule["criteria"] = {"match_type": "all", "conditions": [{"field": "status", "operator": "equals", "value": "Hot"}]}
    created = await client.post("/sharing/rules", json=rule)
    assert created.status_code == 201
    rule_id = created.json()["id"]
    
    toggled = await client.post(f"/sharing/rules/{rule_id}/toggle", json={"is_active": False})
    assert toggled.json()["is_active"] is False
    
    listed = (await client.get("/sharing/rules", params={"object_api_name": "Lead"})).json()
    assert [r["id"] for r in listed] == [rule_id]
    
    assert (await client.delete(f"/sharing/rules/{rule_id}")).status_code == 204
    assert (await client.get(f"/sharing/rules/{rule_id}")).status_code == 404


async def test_non_admin_cannot_manage_rules(client, login, crm):
    login(crm.users.manager)
    response = await client.post("/sharing/rules", json={
        "object_api_name": "Lead",
        "name": "Everything",
        "share_with_type": "role",
        "share_with_id": crm.roles.manager.id,
        "rule_type": "owner_based",
    })
    assert response.status_code == 403


async def test_sharing_model_change_opens_records(client, login, crm):
    login(crm.users.alice)
    record_id = (await client.post("/records/Lead", json={"data": {"name": "Mara"}})).json()["id"]
    
    login(crm.users.admin)
    settings = await client.put("/sharing/objects/Lead/settings", json={"sharing_model": "read"})
    assert settings.json()["sharing_model"] == "read"
    assert settings.json()["sharing_model_name"] == "Public Read Only"
    
    login(crm.users.bob)
    access = (await client.get(f"/sharing/records/Lead/{record_id}/access")).json()
    assert access["has_access"] is True
    assert access["access_source"] == "org_wide_default"
    
    write = (await client.get(f"/sharing/records/Lead/{record_id}/access", params={"access_type": "write"})).json()
    assert write == {"has_access": False, "access_level": None, "access_source": None, "description": None}


async def test_manual_shares_are_managed_by_owner(client, login, crm):
    login(crm.users.alice)
    record_id = (await client.post("/records/Lead", json={"data": {"name": "Mara"}})).json()["id"]
    
    login(crm.users.bob)
    forbidden = await client.post(f"/sharing/records/Lead/{record_id}/shares", json={
        "share_with_type": "user", "share_with_id": crm.users.bob.id,
    })
    assert forbidden.status_code == 403
    
    login(crm.users.alice)
    share = {"share_with_type": "role", "share_with_id": crm.roles.viewer.id, "access_level": "read"}
    created = await client.post(f"/sharing/records/Lead/{record_id}/shares", json=share)
    assert created.status_code == 201
    duplicate = await client.post(f"/sharing/records/Lead/{record_id}/shares", json=share)
    assert duplicate.status_code == 409
    
    info = (await client.get(f"/sharing/records/Lead/{record_id}/info")).json()
    assert [i["user_id"] for i in info] == [crm.users.alice.id, crm.users.vera.id]
    
    share_id = created.json()["id"]
    updated = await client.patch(f"/sharing/shares/{share_id}", json={"access_level": "read_write"})
    assert updated.json()["access_level"] == "read_write"
    
    login(crm.users.bob)
    assert (await client.delete(f"/sharing/shares/{share_id}")).status_code == 403
    
    login(crm.users.alice)
    assert (await client.delete(f"/sharing/shares/{share_id}")).status_code == 204
    assert (await client.get(f"/sharing/records/Lead/{record_id}/shares")).json() == []


async def test_roles_and_objects(client, login, crm):
    login(crm.users.admin)
    created = await client.post("/roles", json={
        "name": "auditor",
        "permissions": {"Lead": ["read"]},
        "hierarchy_level": 4,
    })
    assert created.status_code == 201
    duplicate = await client.post("/roles", json={"name": "auditor"})
    assert duplicate.status_code == 409
    
    login(crm.users.alice)
    roles = (await client.get("/roles")).json()
    assert "auditor" in [r["name"] for r in roles]
    
    objects = (await client.get("/objects")).json()
    lead = next(o for o in objects if o["api_name"] == "Lead")
    assert lead["field_count"] == 6
    
    assert (await client.post("/objects", json={
        "api_name": "Invoice", "label": "Invoice", "plural_label": "Invoices",
    })).status_code == 403


async def test_share_targets(client, login, crm):
    login(crm.users.alice)
    targets = (await client.get("/sharing/targets")).json()
    
    assert crm.users.outsider.id not in [u["id"] for u in targets["users"]]
    assert len(targets["roles"]) == 4


async def test_role_writes_follow_role_permissions(client, login, crm):
    login(crm.users.vera)
    denied = await client.post("/roles", json={"name": "auditor"})
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Permission denied: create on roles"
    
    login(crm.users.admin)
    granted = await client.put(f"/roles/{crm.roles.manager.id}", json={
        "permissions": {"Lead": ["create", "read", "update", "delete"], "roles": ["create"]},
    })
    assert granted.status_code == 200
    
    login(crm.users.manager)
    created = await client.post("/roles", json={"name": "auditor"})
    assert created.status_code == 201
    assert (await client.put(f"/roles/{created.json()['id']}", json={"description": "x"})).status_code == 403
    assert (await client.delete(f"/roles/{created.json()['id']}")).status_code == 403
