"""Tests for the Keycloak Admin API client."""

import json

import httpx
import pytest

from conftest import reply
from idp_registrar.clientreg import ClientMetadata, RegistrationClient, RetryTransport
from idp_registrar.clientreg.keycloak import (
    ClientCredentialsAuth,
    ClientNotFoundError,
    KeycloakAdminClient,
    KeycloakAdminError,
    RealmConfig,
    SMTPConfig,
    create_admin_client,
)
from idp_registrar.config import Settings

BASE_URL = "http://keycloak.test"
TOKEN_URL = f"{BASE_URL}/realms/master/protocol/openid-connect/token"
TOKEN_PATH = "/realms/master/protocol/openid-connect/token"

CLIENTS = [
    {"id": "uuid-1", "clientId": "client-123", "name": "test-client"},
    {"id": "uuid-2", "clientId": "client-456", "name": "other-client"},
]


@pytest.fixture
def admin(idp):
    """Admin client for realm "org" talking to the fake identity provider."""
    return KeycloakAdminClient(idp.client(), BASE_URL + "/", "org")


class TestRealmConfig:
    """Tests for the realm representation."""

    def test_wire_format(self):
        config = RealmConfig(
            realm="org",
            display_name="Org",
            smtp_server=SMTPConfig(host="smtp.example.com", port="587", from_="noreply@example.com"),
        )

        assert config.to_wire() == {
            "realm": "org",
            "displayName": "Org",
            "enabled": True,
            "smtpServer": {
                "host": "smtp.example.com",
                "port": "587",
                "from": "noreply@example.com",
            },
        }


class TestInitialAccessToken:
    """Tests for token_for_registration."""

    @pytest.mark.asyncio
    async def test_returns_token(self, idp, admin):
        idp.add("POST", "/admin/realms/org/clients-initial-access", reply(201, json={"token": "iat-1"}))

        token = await admin.token_for_registration()

        assert token == "iat-1"
        [request] = idp.requests
        assert json.loads(request.content) == {}

    @pytest.mark.asyncio
    async def test_empty_token(self, idp, admin):
        idp.add("POST", "/admin/realms/org/clients-initial-access", reply(200, json={"token": ""}))

        with pytest.raises(KeycloakAdminError, match="token is empty"):
            await admin.token_for_registration()

    @pytest.mark.asyncio
    async def test_error_status(self, idp, admin):
        idp.add("POST", "/admin/realms/org/clients-initial-access", reply(403, text="forbidden"))

        with pytest.raises(KeycloakAdminError) as exc_info:
            await admin.token_for_registration()

        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "forbidden"

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        admin = KeycloakAdminClient(
            httpx.AsyncClient(transport=httpx.MockTransport(refuse)), BASE_URL, "org"
        )

        with pytest.raises(KeycloakAdminError, match="connection refused"):
            await admin.token_for_registration()


class TestRefreshToken:
    """Tests for regenerating registration access tokens."""

    @pytest.mark.asyncio
    async def test_resolves_uuid_and_regenerates(self, idp, admin):
        idp.add("GET", "/admin/realms/org/clients", reply(200, json=CLIENTS))
        idp.add(
            "POST",
            "/admin/realms/org/clients/uuid-1/registration-access-token",
            reply(200, json={"registrationAccessToken": "rat-new"}),
        )

        token = await admin.refresh_token("client-123")

        assert token == "rat-new"

    @pytest.mark.asyncio
    async def test_unknown_client(self, idp, admin):
        idp.add("GET", "/admin/realms/org/clients", reply(200, json=CLIENTS))

        with pytest.raises(ClientNotFoundError):
            await admin.refresh_token("missing")

        assert len(idp.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_token(self, idp, admin):
        idp.add("GET", "/admin/realms/org/clients", reply(200, json=CLIENTS))
        idp.add(
            "POST",
            "/admin/realms/org/clients/uuid-2/registration-access-token",
            reply(200, json={}),
        )

        with pytest.raises(KeycloakAdminError, match="token is empty"):
            await admin.refresh_token("client-456")


class TestRealms:
    """Tests for realm operations."""

    @pytest.mark.asyncio
    async def test_realm_exists(self, idp, admin):
        idp.add("GET", "/admin/realms/org-1", reply(200, json={"realm": "org-1"}))
        idp.add("GET", "/admin/realms/org-2", reply(404))

        assert await admin.realm_exists("org-1") is True
        assert await admin.realm_exists("org-2") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 409, 500])
    async def test_realm_exists_unexpected_status(self, idp, admin, status_code):
        idp.add("GET", "/admin/realms/org-1", reply(status_code))

        with pytest.raises(KeycloakAdminError) as exc_info:
            await admin.realm_exists("org-1")

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_create_realm(self, idp, admin):
        idp.add("POST", "/admin/realms", reply(201))

        created = await admin.create_or_update_realm(RealmConfig(realm="org-1"))

        assert created is True
        [request] = idp.requests
        assert json.loads(request.content) == {"realm": "org-1", "enabled": True}

    @pytest.mark.asyncio
    async def test_existing_realm_is_updated(self, idp, admin):
        idp.add("POST", "/admin/realms", reply(409))
        idp.add("PUT", "/admin/realms/org-1", reply(204))

        created = await admin.create_or_update_realm(
            RealmConfig(realm="org-1", display_name="Org One")
        )

        assert created is False
        [put] = idp.requests_to("PUT", "/admin/realms/org-1")
        assert json.loads(put.content)["displayName"] == "Org One"

    @pytest.mark.asyncio
    async def test_update_failure(self, idp, admin):
        idp.add("POST", "/admin/realms", reply(409))
        idp.add("PUT", "/admin/realms/org-1", reply(500, text="boom"))

        with pytest.raises(KeycloakAdminError, match="update realm"):
            await admin.create_or_update_realm(RealmConfig(realm="org-1"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [204, 404])
    async def test_delete_realm(self, idp, admin, status_code):
        idp.add("DELETE", "/admin/realms/org-1", reply(status_code))

        await admin.delete_realm("org-1")

    @pytest.mark.asyncio
    async def test_delete_realm_failure(self, idp, admin):
        idp.add("DELETE", "/admin/realms/org-1", reply(403))

        with pytest.raises(KeycloakAdminError):
            await admin.delete_realm("org-1")


class TestClients:
    """Tests for client lookups."""

    @pytest.mark.asyncio
    async def test_get_client_by_name(self, idp, admin):
        idp.add("GET", "/admin/realms/org/clients", reply(200, json=CLIENTS))

        client = await admin.get_client_by_name("other-client")

        assert client.id == "uuid-2"
        assert client.client_id == "client-456"
        assert await admin.get_client_by_name("nope") is None

    @pytest.mark.asyncio
    async def test_malformed_client_list(self, idp, admin):
        idp.add("GET", "/admin/realms/org/clients", reply(200, json={"not": "a list"}))

        with pytest.raises(KeycloakAdminError):
            await admin.list_clients()

    def test_for_realm(self, admin):
        other = admin.for_realm("org-2")

        assert other.realm == "org-2"
        assert admin.realm == "org"
        assert other.registration_endpoint() == (
            f"{BASE_URL}/realms/org-2/clients-registrations/openid-connect"
        )


class TestClientCredentialsAuth:
    """Tests for admin token handling."""

    @pytest.mark.asyncio
    async def test_token_is_cached(self, idp):
        idp.add("POST", TOKEN_PATH, reply(200, json={"access_token": "admin-1", "expires_in": 300}))
        idp.add("GET", "/admin/realms/org", reply(200))
        auth = ClientCredentialsAuth(TOKEN_URL, "admin-client", "admin-secret")

        async with httpx.AsyncClient(auth=auth, transport=idp.transport) as client:
            await client.get(f"{BASE_URL}/admin/realms/org")
            await client.get(f"{BASE_URL}/admin/realms/org")

        [token_request] = idp.requests_to("POST", TOKEN_PATH)
        assert b"grant_type=client_credentials" in token_request.content
        assert [r.headers["Authorization"] for r in idp.requests_to("GET", "/admin/realms/org")] == [
            "Bearer admin-1",
            "Bearer admin-1",
        ]

    @pytest.mark.asyncio
    async def test_token_refetched_on_401(self, idp):
        idp.add(
            "POST",
            TOKEN_PATH,
            reply(200, json={"access_token": "admin-1", "expires_in": 300}),
            reply(200, json={"access_token": "admin-2", "expires_in": 300}),
        )
        idp.add("GET", "/admin/realms/org", reply(401), reply(200))
        auth = ClientCredentialsAuth(TOKEN_URL, "admin-client", "admin-secret")

        async with httpx.AsyncClient(auth=auth, transport=idp.transport) as client:
            response = await client.get(f"{BASE_URL}/admin/realms/org")

        assert response.status_code == 200
        assert len(idp.requests_to("POST", TOKEN_PATH)) == 2
        assert idp.requests_to("GET", "/admin/realms/org")[-1].headers["Authorization"] == (
            "Bearer admin-2"
        )

    @pytest.mark.asyncio
    async def test_token_failure(self, idp):
        idp.add("POST", TOKEN_PATH, reply(401, text="invalid_client"))
        auth = ClientCredentialsAuth(TOKEN_URL, "admin-client", "wrong")
        admin = KeycloakAdminClient(httpx.AsyncClient(auth=auth, transport=idp.transport), BASE_URL, "org")

        with pytest.raises(KeycloakAdminError, match="failed to obtain admin token"):
            await admin.realm_exists("org")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "token_reply",
        [
            reply(200, text="<html>login</html>"),
            reply(200, json={"token_type": "Bearer"}),
            reply(200, json=["admin-1"]),
            reply(200, json={"access_token": "admin-1", "expires_in": "soon"}),
        ],
    )
    async def test_malformed_token_response(self, idp, token_reply):
        idp.add("POST", TOKEN_PATH, token_reply)
        auth = ClientCredentialsAuth(TOKEN_URL, "admin-client", "admin-secret")
        admin = KeycloakAdminClient(httpx.AsyncClient(auth=auth, transport=idp.transport), BASE_URL, "org")

        with pytest.raises(KeycloakAdminError) as exc_info:
            await admin.realm_exists("org")

        assert exc_info.value.operation == "obtain admin token"
        assert idp.requests_to("GET", "/admin/realms/org") == []


class TestCreateAdminClient:
    """Tests for the settings-driven factory."""

    @pytest.mark.asyncio
    async def test_uses_admin_realm(self):
        settings = Settings(keycloak_base_url="http://keycloak.test/", keycloak_admin_realm="ops")

        admin = create_admin_client(settings)
        try:
            assert admin.realm == "ops"
            assert admin.registration_endpoint() == (
                "http://keycloak.test/realms/ops/clients-registrations/openid-connect"
            )
        finally:
            await admin.aclose()

    @pytest.mark.asyncio
    async def test_registration_does_not_carry_admin_credentials(self, idp):
        """Test that DCR calls use the IAT on their own client, never the admin token."""
        registration_path = "/realms/master/clients-registrations/openid-connect"
        idp.add("POST", TOKEN_PATH, reply(200, json={"access_token": "admin-1", "expires_in": 300}))
        idp.add(
            "POST",
            "/admin/realms/master/clients-initial-access",
            reply(201, json={"token": "iat-1"}),
        )
        idp.add("POST", registration_path, reply(201, json={"client_id": "client-123"}))
        admin = create_admin_client(Settings(), transport=idp.transport)
        client = RegistrationClient(
            http_client=httpx.AsyncClient(transport=RetryTransport(idp.transport, admin)),
            token_provider=admin,
        )

        info = await client.register(
            admin.registration_endpoint(), ClientMetadata(client_name="test-client")
        )

        assert info.client_id == "client-123"
        [iat_request] = idp.requests_to("POST", "/admin/realms/master/clients-initial-access")
        assert iat_request.headers["Authorization"] == "Bearer admin-1"
        [register_request] = idp.requests_to("POST", registration_path)
        assert register_request.headers["Authorization"] == "Bearer iat-1"

    @pytest.mark.asyncio
    async def test_admin_requests_are_not_replayed_by_transport(self, idp):
        """Test that the admin client's transport passes a 401 straight through."""
        idp.add("POST", TOKEN_PATH, reply(200, json={"access_token": "admin-1", "expires_in": 300}))
        idp.add("GET", "/admin/realms/org", reply(401))
        admin = create_admin_client(Settings(), transport=idp.transport)

        with pytest.raises(KeycloakAdminError) as exc_info:
            await admin.realm_exists("org")

        assert exc_info.value.status_code == 401
        # One send plus the single token refetch done by ClientCredentialsAuth
        assert len(idp.requests_to("GET", "/admin/realms/org")) == 2
        assert idp.requests_to("GET", "/admin/realms/master/clients") == []


class TestRegistrationWithKeycloak:
    """End-to-end registration flows against the admin adapter."""

    @pytest.mark.asyncio
    async def test_register_then_recover_from_expired_token(self, idp):
        """Test register, then a read whose token expired and is regenerated."""
        registration_path = "/realms/org/clients-registrations/openid-connect"
        client_uri = f"{BASE_URL}{registration_path}/client-123"
        info = {
            "client_id": "client-123",
            "client_secret": "secret-456",
            "registration_access_token": "rat-1",
            "registration_client_uri": client_uri,
        }
        idp.add("POST", "/admin/realms/org/clients-initial-access", reply(201, json={"token": "iat-1"}))
        idp.add("POST", registration_path, reply(201, json=info))
        idp.add("GET", f"{registration_path}/client-123", reply(401), reply(200, json=info))
        idp.add("GET", "/admin/realms/org/clients", reply(200, json=CLIENTS))
        idp.add(
            "POST",
            "/admin/realms/org/clients/uuid-1/registration-access-token",
            reply(200, json={"registrationAccessToken": "rat-2"}),
        )

        transport = RetryTransport(idp.transport)
        http_client = httpx.AsyncClient(transport=transport)
        admin = KeycloakAdminClient(http_client, BASE_URL, "org")
        transport.refresher = admin
        client = RegistrationClient(http_client=http_client, token_provider=admin)

        registered = await client.register(
            admin.registration_endpoint(), ClientMetadata(client_name="test-client")
        )
        read = await client.read(
            registered.client_id,
            registered.registration_client_uri,
            registered.registration_access_token,
        )

        assert read.client_id == "client-123"
        [register_request] = idp.requests_to("POST", registration_path)
        assert register_request.headers["Authorization"] == "Bearer iat-1"
        reads = idp.requests_to("GET", f"{registration_path}/client-123")
        assert [r.headers["Authorization"] for r in reads] == ["Bearer rat-1", "Bearer rat-2"]
