"""Temporal client factory.

Creates connections to Temporal (Cloud or a local dev server) using
credentials from the environment.
"""

import os
from typing import Union
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client
from temporalio.service import TLSConfig

from core.config import ConfigurationError


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "tenant.tmprl.cloud:7233" or "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud (omit for a local dev server)
    - TEMPORAL_CERT_PATH / TEMPORAL_KEY_PATH: Client certificate and key (optional, for mTLS)

    Returns:
        Connected Temporal client

    Raises:
        ConfigurationError: If TEMPORAL_ENDPOINT is missing, or a certificate
            is given without its key
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT")
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")
    key_path = os.getenv("TEMPORAL_KEY_PATH")

    if not endpoint:
        raise ConfigurationError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')",
            missing=("TEMPORAL_ENDPOINT",),
        )

    # Local dev server: plain connection
    if not api_key and not cert_path:
        return await Client.connect(endpoint, namespace=namespace)

    tls: Union[bool, TLSConfig] = True
    if cert_path:
        if not key_path:
            raise ConfigurationError(
                "TEMPORAL_KEY_PATH must be set together with TEMPORAL_CERT_PATH",
                missing=("TEMPORAL_KEY_PATH",),
            )
        tls = TLSConfig(
            client_cert=Path(cert_path).read_bytes(),
            client_private_key=Path(key_path).read_bytes(),
        )

    return await Client.connect(
        endpoint,
        namespace=namespace,
        tls=tls,
        api_key=api_key,
    )
