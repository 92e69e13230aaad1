# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

"""
HTTP transport for the configuration service.

Performs the wire operations (key fetch, blueprint init, encrypted config push),
bounds response sizes, applies the explicit retry policy and interprets response status.
"""

import base64
import time
from typing import Any
from urllib.parse import quote

import httpx

from coreason_kcc.config import KccSettings
from coreason_kcc.exceptions import CoreasonKccError, NetworkError, OversizedResponseError, ServerRejected
from coreason_kcc.models import BlueprintDescriptor
from coreason_kcc.utils.logger import logger

KEYS_PATH = "/v1/keys"
INIT_PATH = "/v1/init"

# The two write operations use different success rules. They are kept apart on purpose.
BLUEPRINT_INIT_FAILURE_STATUS = 300
CONFIG_PUSH_SUCCESS_STATUS = 200


def build_http_client(settings: KccSettings) -> httpx.Client:
    """
    Creates the synchronous HTTP client used to talk to the configuration service.

    Args:
        settings: The client settings (timeout, TLS verification).

    Returns:
        httpx.Client: A new client. The caller owns it and must close it.
    """
    if settings.insecure_skip_verify:
        logger.warning(
            "TLS certificate verification is DISABLED for the configuration service. "
            "Unset 'insecure_skip_verify' outside of local testing."
        )
    return httpx.Client(timeout=settings.http_timeout, verify=not settings.insecure_skip_verify)


def _read_bounded(response: httpx.Response, limit: int) -> bytes:
    """
    Reads a streamed response body, refusing anything larger than `limit` bytes.

    Raises:
        OversizedResponseError: If the declared or actual body size exceeds the limit.
    """
    content_length = response.headers.get("Content-Length")
    if content_length:
        try:
            if int(content_length) > limit:
                raise OversizedResponseError(f"Response too large ({content_length} bytes)")
        except ValueError:
            pass

    content = bytearray()
    for chunk in response.iter_bytes():
        content.extend(chunk)
        if len(content) > limit:
            raise OversizedResponseError(f"Response exceeded {limit} bytes")
    return bytes(content)


def _request(
    client: httpx.Client,
    method: str,
    url: str,
    settings: KccSettings,
    **kwargs: Any,
) -> tuple[int, str]:
    """
    Sends one request and returns (status code, body text).

    Connection and IO failures are retried according to the settings' retry policy
    (one attempt by default). Other request failures (undecodable bodies, redirect loops)
    and HTTP status codes are never retried here.

    Raises:
        NetworkError: If the service cannot be reached after all attempts, or the exchange fails.
        OversizedResponseError: If the response body is too large.
    """
    attempts = settings.retry_attempts

    for attempt in range(attempts):
        try:
            with client.stream(method, url, **kwargs) as response:
                body = _read_bounded(response, settings.max_response_bytes)
                return response.status_code, body.decode("utf-8", errors="replace")
        except httpx.TransportError as e:
            if attempt == attempts - 1:
                logger.error(f"{method} {url} failed: {e}")
                raise NetworkError(f"Failed to reach {url}: {e}") from e

            sleep_time = min(settings.retry_wait_initial * (2**attempt), settings.retry_wait_max)
            logger.warning(f"{method} {url} failed ({e}), retrying in {sleep_time:.2f}s")
            time.sleep(sleep_time)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"Request to {url} failed: {e}") from e

    # Unreachable given the loop structure, settings guarantee at least one attempt
    raise CoreasonKccError(f"Failed to reach {url}")  # pragma: no cover


def get_key_document(client: httpx.Client, endpoint: str, settings: KccSettings) -> str:
    """
    Fetches the raw key document from GET {endpoint}/v1/keys.

    Redirects are not followed, so a 3xx answer is a rejection like any other non-2xx status.

    Returns:
        str: The response body, decoded by the caller.

    Raises:
        NetworkError: If the service cannot be reached.
        ServerRejected: If the service does not answer with a 2xx status.
    """
    url = f"{endpoint}{KEYS_PATH}"
    status, body = _request(client, "GET", url, settings)
    if not 200 <= status < 300:
        logger.error(f"Key request rejected with status {status}")
        raise ServerRejected(f"Failed to get key: {body}", status_code=status, body=body)
    return body


def post_blueprint_init(
    client: httpx.Client,
    endpoint: str,
    descriptor: BlueprintDescriptor,
    settings: KccSettings,
) -> str:
    """
    Registers a blueprint with POST {endpoint}/v1/init. The descriptor is sent as plaintext JSON.

    Any status below 300 counts as success.

    Returns:
        str: The service response body.

    Raises:
        SerializationError: If the descriptor cannot be encoded.
        NetworkError: If the service cannot be reached.
        ServerRejected: If the status is 300 or above. Carries the body verbatim.
    """
    url = f"{endpoint}{INIT_PATH}"
    status, body = _request(
        client,
        "POST",
        url,
        settings,
        content=descriptor.to_wire(),
        headers={"Content-Type": "application/json"},
    )
    if status >= BLUEPRINT_INIT_FAILURE_STATUS:
        logger.error(f"Blueprint upload rejected with status {status}")
        raise ServerRejected(f"Failed to upload blueprint: {body}", status_code=status, body=body)

    logger.debug(f"Service response is {body}")
    return body


def post_encrypted_config(
    client: httpx.Client,
    endpoint: str,
    blueprint_id: str,
    ciphertext: bytes,
    settings: KccSettings,
) -> str:
    """
    Pushes an encrypted configuration with POST {endpoint}/v1/{blueprint_id}.

    The body is the standard base64 encoding of the ciphertext, sent as text/plain.
    Only status 200 counts as success.

    Returns:
        str: The service response body.

    Raises:
        NetworkError: If the service cannot be reached.
        ServerRejected: If the status is anything other than 200. Carries the body verbatim.
    """
    url = f"{endpoint}/v1/{quote(blueprint_id, safe='')}"
    status, body = _request(
        client,
        "POST",
        url,
        settings,
        content=base64.b64encode(ciphertext),
        headers={"Content-Type": "text/plain"},
    )
    if status != CONFIG_PUSH_SUCCESS_STATUS:
        logger.error(f"Config update for blueprint '{blueprint_id}' rejected with status {status}")
        raise ServerRejected(f"Failed to update config: {body}", status_code=status, body=body)

    logger.debug(f"Service response is {body}")
    return body
