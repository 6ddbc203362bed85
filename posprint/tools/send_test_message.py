#!/usr/bin/env python3
"""
Send a test submission to a running posprint relay.
Run this after deploying to check the whole path down to the printer.
"""

import asyncio
import os
import sys
from typing import Optional

import httpx


DEFAULT_EMAIL = "test@example.com"
DEFAULT_MESSAGE = "Hello from the POS print test!\nThis is a multi-line message.\nEnjoy!"


async def send_test_message(
    url: str,
    email: str,
    message: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> int:
    """
    POST one {email, message} submission.

    Returns:
        HTTP status code of the response
    """
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport) as client:
        response = await client.post(url, json={"email": email, "message": message})

    print(f"Response status: {response.status_code}")
    if response.text:
        print(f"Response body: {response.text}")

    return response.status_code


async def run() -> int:
    url = os.getenv("FUNCTION_URL")
    if not url:
        print("❌ Set FUNCTION_URL to your relay URL and retry.", file=sys.stderr)
        return 1

    email = os.getenv("TEST_EMAIL", DEFAULT_EMAIL)
    message = os.getenv("TEST_MESSAGE", DEFAULT_MESSAGE)

    try:
        status = await send_test_message(url, email, message)
    except httpx.HTTPError as e:
        print(f"❌ Request failed: {e}", file=sys.stderr)
        return 1

    return 1 if status >= 400 else 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
