#!/usr/bin/env python3
"""Exercise the full DCR lifecycle against a running Keycloak.

Registers a client, reads it back, updates its redirect URIs and deletes it,
using the same admin client and registration client the operator uses.

------------------------------------------------------------------------
Local Keycloak setup
------------------------------------------------------------------------

1. Start Keycloak:

       podman run -d \
         --name keycloak-test \
         -p 8180:8080 \
         -e KC_BOOTSTRAP_ADMIN_USERNAME=admin \
         -e KC_BOOTSTRAP_ADMIN_PASSWORD=admin \
         quay.io/keycloak/keycloak:26.0 start-dev --http-port=8080

2. In the master realm, create a confidential client with service accounts
   enabled and give its service account the ``admin`` realm role.

3. Export its credentials:

       export KEYCLOAK_BASE_URL=http://localhost:8180
       export KEYCLOAK_ADMIN_CLIENT_ID=idp-registrar
       export KEYCLOAK_ADMIN_CLIENT_SECRET=<secret>

------------------------------------------------------------------------
Usage
------------------------------------------------------------------------

    python scripts/dcr_roundtrip.py --realm test-realm
    python scripts/dcr_roundtrip.py --realm test-realm --create-realm
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid

from dotenv import load_dotenv

from idp_registrar.clientreg import ClientMetadata, ClientRegError, RegistrationClient
from idp_registrar.clientreg.keycloak import KeycloakAdminError, RealmConfig, create_admin_client


async def roundtrip(realm: str, create_realm: bool) -> int:
    admin = create_admin_client()
    try:
        if create_realm:
            created = await admin.create_or_update_realm(RealmConfig(realm=realm))
            print(f"Realm {realm}: {'created' if created else 'updated'}")

        realm_admin = admin.for_realm(realm)
        client = RegistrationClient(token_provider=realm_admin, token_refresher=realm_admin)

        metadata = ClientMetadata(
            client_name=f"dcr-roundtrip-{uuid.uuid4().hex[:8]}",
            redirect_uris=["http://localhost:8000/oauth/callback"],
            grant_types=["authorization_code", "refresh_token"],
            token_endpoint_auth_method="client_secret_basic",
        )

        print(f"\n>>> register {metadata.client_name}")
        info = await client.register(realm_admin.registration_endpoint(), metadata)
        print(f"<<< client_id={info.client_id} uri={info.registration_client_uri}")

        print("\n>>> read")
        info = await client.read(
            info.client_id, info.registration_client_uri or "", info.registration_access_token or ""
        )
        print(f"<<< redirect_uris={info.redirect_uris}")

        print("\n>>> update")
        updated = info.metadata.model_copy(
            update={"redirect_uris": ["http://localhost:9000/oauth/callback"]}
        )
        info = await client.update(
            info.registration_client_uri or "", info.registration_access_token or "", updated
        )
        print(f"<<< redirect_uris={info.redirect_uris}")

        print("\n>>> delete")
        await client.delete(
            info.client_id, info.registration_client_uri or "", info.registration_access_token or ""
        )
        print("<<< deleted")
    except (ClientRegError, KeycloakAdminError) as e:
        print(f"\nDCR roundtrip failed: {e}", file=sys.stderr)
        return 1
    finally:
        await admin.aclose()

    print("\nDCR roundtrip succeeded.")
    return 0


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--realm", required=True, help="Realm to register the client in")
    parser.add_argument(
        "--create-realm",
        action="store_true",
        help="Create (or update) the realm before registering",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(roundtrip(args.realm, args.create_realm)))


if __name__ == "__main__":
    main()
