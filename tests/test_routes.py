import time

import pytest
from fastapi.testclient import TestClient

from helpers import auth_headers, make_token
from rolegate.core import config
from rolegate.features.permissions.defaults import default_permission_set
from rolegate.features.permissions.schemas import CUSTOM_ROLES_DOCUMENT_KEY, ResourceKind
from rolegate.main import app


ADMIN = auth_headers("Administrador")
USER = auth_headers("usuario")


@pytest.fixture
def client(store):
    app.state.permission_store = store
    yield TestClient(app)
    app.state.permission_store = None


def _update_payload(permissions=None, custom_roles=()):
    permissions = permissions or default_permission_set()
    payload = {
        kind.set_field: [row.model_dump() for row in permissions.matrix(kind).rows]
        for kind in ResourceKind
    }
    payload["custom_roles"] = list(custom_roles)
    return payload


class TestAuth:

    def test_missing_token(self, client):
        response = client.get("/permissions")
        assert response.status_code in (401, 403)

    def test_expired_token(self, client):
        response = client.get("/permissions", headers=auth_headers("admin", exp=int(time.time()) - 60))
        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"

    def test_token_without_role(self, client):
        response = client.get("/permissions", headers=auth_headers(None, sub="u-1"))
        assert response.status_code == 401

    def test_forged_signature(self, client):
        token = make_token("admin", secret="another-secret-0123456789abcdef-xyz")
        response = client.put("/permissions", json=_update_payload(), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_unsigned_admin_token(self, client, source):
        token = make_token("admin", secret=None, algorithm="none")
        response = client.put("/permissions", json=_update_payload(), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert source.writes == []

    def test_verification_key_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(config, "JWT_SECRET", None)
        response = client.get("/permissions", headers=ADMIN)
        assert response.status_code == 503

    def test_garbage_token(self, client):
        response = client.get("/permissions", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_store_not_initialized(self, client):
        app.state.permission_store = None
        response = client.get("/permissions", headers=ADMIN)
        assert response.status_code == 503


class TestReads:

    def test_get_permissions(self, client, source):
        response = client.get("/permissions", headers=USER)
        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "remote"
        assert body["custom_roles"] == []
        modules = {row["key"] for row in body["permissions"]["module_access"]["rows"]}
        assert "Gestión de Roles" in modules
        assert source.fetches == 1

    def test_get_permissions_when_source_is_down(self, client, source):
        source.fail_fetch = True
        response = client.get("/permissions", headers=USER)
        assert response.status_code == 200
        assert response.json()["source"] == "defaults"

    def test_status(self, client, store):
        response = client.get("/permissions/status", headers=USER)
        assert response.json() == {"state": "uninitialized", "source": None, "fetched_at": None, "custom_roles": 0}
        client.get("/permissions", headers=USER)
        response = client.get("/permissions/status", headers=USER)
        assert response.json()["state"] == "ready"
        assert response.json()["source"] == "remote"

    def test_list_roles(self, client):
        response = client.get("/permissions/roles", headers=USER)
        assert response.status_code == 200
        roles = response.json()
        assert [role["id"] for role in roles] == ["admin", "accounting", "coordinator", "user"]
        assert roles[0]["name"] == "Administrador"
        assert all(role["builtin"] for role in roles)

    @pytest.mark.parametrize("role, kind, key, granted", [
        ("administrador", "module", "Gestión de Roles", True),
        ("usuario", "module", "Gestión de Roles", False),
        ("contabilidad", "feature", "Acceso a Contabilidad", True),
        ("coordinador", "crud", "Eliminar Productos", False),
        ("admin", "data", "Nóminas", False),
    ])
    def test_check(self, client, role, kind, key, granted):
        response = client.get("/permissions/check", params={"kind": kind, "key": key}, headers=auth_headers(role))
        assert response.status_code == 200
        body = response.json()
        assert body["granted"] is granted
        assert body["role"] == role

    def test_check_other_role(self, client):
        response = client.get(
            "/permissions/check",
            params={"kind": "module", "key": "Dashboard", "role": "Contable", "fresh": True},
            headers=USER,
        )
        body = response.json()
        assert body["role_id"] == "accounting"
        assert body["granted"] is True

    def test_check_rejects_unknown_kind(self, client):
        response = client.get("/permissions/check", params={"kind": "page", "key": "Dashboard"}, headers=USER)
        assert response.status_code == 400


class TestWrites:

    def test_requires_role_management(self, client):
        assert client.put("/permissions", json=_update_payload(), headers=USER).status_code == 403
        assert client.post("/permissions/roles", json={"name": "Auditor"}, headers=USER).status_code == 403
        assert client.post("/permissions/invalidate", headers=USER).status_code == 403

    def test_put_permissions(self, client, source):
        permissions = default_permission_set()
        permissions.special_features.find("Ver Ayuda/Soporte").grants["custom_123"] = True
        payload = _update_payload(permissions, [{"id": "custom_123", "name": "Soporte"}])

        response = client.put("/permissions", json=payload, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["custom_roles"][0]["id"] == "custom_123"

        check = client.get(
            "/permissions/check",
            params={"kind": "feature", "key": "Ver Ayuda/Soporte"},
            headers=auth_headers("custom_123"),
        )
        assert check.json()["granted"] is True

    def test_put_rejects_duplicate_rows(self, client):
        payload = _update_payload()
        payload["module_access"].append(payload["module_access"][0])
        response = client.put("/permissions", json=payload, headers=ADMIN)
        assert response.status_code == 400

    def test_put_partial_failure(self, client, source):
        source.failing_writes = {ResourceKind.DATA.document_key}
        response = client.put("/permissions", json=_update_payload(), headers=ADMIN)
        assert response.status_code == 502
        assert response.json()["detail"]["failed"] == [ResourceKind.DATA.document_key]
        assert ResourceKind.MODULE.document_key in source.documents

    def test_refresh_and_invalidate(self, client, store, source):
        assert client.post("/permissions/refresh", headers=ADMIN).status_code == 200
        assert client.post("/permissions/refresh", headers=ADMIN).status_code == 200
        assert source.fetches == 1
        assert client.post("/permissions/invalidate", headers=ADMIN).status_code == 204
        assert not store.is_fresh()

    def test_refresh_failure(self, client, source):
        source.fail_fetch = True
        response = client.post("/permissions/refresh", headers=ADMIN)
        assert response.status_code == 503


class TestCustomRoleRoutes:

    def test_create_rename_delete(self, client, source):
        response = client.post("/permissions/roles", json={"name": " Auditor "}, headers=ADMIN)
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Auditor"
        assert created["builtin"] is False
        role_id = created["id"]

        roles = client.get("/permissions/roles", headers=ADMIN).json()
        assert roles[-1]["id"] == role_id

        response = client.patch(f"/permissions/roles/{role_id}", json={"name": "Auditoría"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["name"] == "Auditoría"
        assert source.documents[CUSTOM_ROLES_DOCUMENT_KEY][0]["name"] == "Auditoría"

        check = client.get(
            "/permissions/check",
            params={"kind": "module", "key": "Dashboard"},
            headers=auth_headers(role_id),
        )
        assert check.json()["granted"] is False

        assert client.delete(f"/permissions/roles/{role_id}", headers=ADMIN).status_code == 204
        assert source.documents[CUSTOM_ROLES_DOCUMENT_KEY] == []
        for record in source.documents[ResourceKind.MODULE.document_key]:
            assert role_id not in record

    def test_builtin_roles_are_fixed(self, client):
        assert client.patch("/permissions/roles/admin", json={"name": "Jefe"}, headers=ADMIN).status_code == 400
        assert client.delete("/permissions/roles/user", headers=ADMIN).status_code == 400

    def test_unknown_role(self, client):
        assert client.patch("/permissions/roles/custom_x", json={"name": "X"}, headers=ADMIN).status_code == 404
        assert client.delete("/permissions/roles/custom_x", headers=ADMIN).status_code == 404

    def test_blank_name(self, client):
        response = client.post("/permissions/roles", json={"name": "  "}, headers=ADMIN)
        assert response.status_code == 400

    def test_create_fails_when_source_is_down(self, client, source):
        source.fail_fetch = True
        response = client.post("/permissions/roles", json={"name": "Auditor"}, headers=ADMIN)
        assert response.status_code == 503


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "permissions": "uninitialized"}
