"""Verify provisioning configuration before starting a worker or the API.

Checks the Baserow admin settings (offline) and the Temporal connection
variables, then optionally authenticates against Baserow once.

Usage:
    python scripts/check_config.py
    python scripts/check_config.py --authenticate
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.baserow import AuthError, TokenLifecycleManager
from core.config import BaserowSettings, ConfigurationError, get_db_path


def check_baserow() -> bool:
    print("\nBaserow")
    print("-" * 70)
    try:
        settings = BaserowSettings.from_env()
        settings.validate()
    except ConfigurationError as e:
        print(f"✗ {e}")
        return False

    print(f"✓ BASEROW_API_URL        {settings.api_url}")
    print(f"✓ BASEROW_ADMIN_EMAIL    {settings.admin_email}")
    print(f"  BASEROW_WORKSPACE_ID   {settings.workspace_id or 'one workspace per tenant'}")
    print(f"  API version            {settings.api_version}")
    print(f"  Refresh buffer         {settings.refresh_buffer_seconds}s")
    return True


def check_temporal() -> bool:
    print("\nTemporal")
    print("-" * 70)
    endpoint = os.getenv("TEMPORAL_ENDPOINT")
    if not endpoint:
        print("✗ TEMPORAL_ENDPOINT not set (e.g. localhost:7233)")
        return False

    print(f"✓ TEMPORAL_ENDPOINT      {endpoint}")
    print(f"  TEMPORAL_NAMESPACE     {os.getenv('TEMPORAL_NAMESPACE', 'default')}")
    print(f"  TEMPORAL_API_KEY       {'set' if os.getenv('TEMPORAL_API_KEY') else 'not set (local server)'}")
    if os.getenv("TEMPORAL_CERT_PATH") and not os.getenv("TEMPORAL_KEY_PATH"):
        print("✗ TEMPORAL_CERT_PATH is set without TEMPORAL_KEY_PATH")
        return False
    return True


async def try_authenticate() -> bool:
    manager = TokenLifecycleManager(BaserowSettings.from_env())
    try:
        credential = await manager.get_valid_token()
        print(f"✓ Authenticated, token valid until {credential.expires_at} (epoch ms)")
        return True
    except AuthError as e:
        print(f"✗ Authentication failed: {e}")
        return False
    finally:
        await manager.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Check tenant provisioning configuration")
    parser.add_argument("--authenticate", action="store_true", help="Also authenticate against Baserow")
    args = parser.parse_args()

    print("=" * 70)
    print("TENANT PROVISIONING CONFIGURATION CHECK")
    print("=" * 70)

    baserow_ok = check_baserow()
    temporal_ok = check_temporal()
    print(f"\nTenant store: {get_db_path()}")

    if baserow_ok and args.authenticate:
        baserow_ok = asyncio.run(try_authenticate())

    print("\n" + "=" * 70)
    ready = baserow_ok and temporal_ok
    print("✓ READY" if ready else "✗ NOT READY")
    return 0 if ready else 1


if __name__ == "__main__":
    sys.exit(main())
