from __future__ import annotations

import asyncio
import logging
import sys

import aresclient

logger: logging.Logger = logging.getLogger(__name__)

# Use httpbin.org for real HTTP testing
HTTPBIN_URL = "https://httpbin.org"


async def check_get() -> None:
    logger.info("Checking get...")
    async with aresclient.AsyncResilientClient() as client:
        response = await client.get(f"{HTTPBIN_URL}/get")
    assert response.status_code == 200


async def check_post() -> None:
    logger.info("Checking post...")
    async with aresclient.AsyncResilientClient() as client:
        response = await client.post(f"{HTTPBIN_URL}/post", json={"key": "value"})
    assert response.status_code == 200


def main() -> None:
    r"""Run all package checks to validate installation and
    functionality."""
    try:
        asyncio.run(check_get())
        asyncio.run(check_post())

        logger.info("✅ All package checks passed successfully!")
    except Exception:
        logger.exception("❌ Package check failed")
        sys.exit(1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
