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
KeyAcquirer component for fetching and verifying the service's public key.
"""

import base64
import binascii
import zlib

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_kcc.config import KccSettings
from coreason_kcc.exceptions import CoreasonKccError, KeyFormatError, KeyIntegrityError, SerializationError
from coreason_kcc.models import PublicKeyMaterial
from coreason_kcc.models_internal import KeyDocument
from coreason_kcc.transport import get_key_document
from coreason_kcc.utils.logger import logger

tracer = trace.get_tracer(__name__)


def key_checksum(data: bytes) -> int:
    """
    Computes the IEEE CRC-32 (reflected polynomial 0xEDB88320) of the given bytes.

    Args:
        data: The raw key bytes.

    Returns:
        int: The unsigned 32-bit checksum.
    """
    return zlib.crc32(data) & 0xFFFFFFFF


def load_public_key(der: bytes) -> RSAPublicKey:
    """
    Parses PKIX/SPKI DER bytes into an RSA public key.

    Args:
        der: The DER encoded SubjectPublicKeyInfo.

    Returns:
        RSAPublicKey: The parsed key.

    Raises:
        KeyFormatError: If the bytes are not a public key, or the key is not RSA.
    """
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError(f"Key bytes are not a PKIX public key: {e}") from e

    if not isinstance(key, RSAPublicKey):
        raise KeyFormatError(f"Expected an RSA public key, got {type(key).__name__}")
    return key


def _decode_document(body: str) -> tuple[KeyDocument, bytes]:
    try:
        document = KeyDocument.model_validate_json(body)
    except ValidationError as e:
        raise SerializationError(f"Invalid key document: {e}") from e

    try:
        raw = base64.b64decode(document.key, validate=True)
    except binascii.Error as e:
        raise SerializationError(f"Key is not valid base64: {e}") from e
    return document, raw


def fetch_key(client: httpx.Client, endpoint: str, settings: KccSettings) -> PublicKeyMaterial:
    """
    Fetches the service's public key and verifies it before it is trusted.

    The checksum is verified before the key bytes are parsed. No key is cached.
    Emits an OpenTelemetry span `fetch_key`.

    Args:
        client: The HTTP client to use.
        endpoint: The service base URL.
        settings: The client settings.

    Returns:
        PublicKeyMaterial: The verified key.

    Raises:
        NetworkError: If the service cannot be reached.
        ServerRejected: If the key request is answered with a non-2xx status.
        SerializationError: If the key document is malformed.
        KeyIntegrityError: If the declared checksum does not match the key bytes.
        KeyFormatError: If the key bytes are not an RSA PKIX public key.
    """
    with tracer.start_as_current_span("fetch_key") as span:
        try:
            body = get_key_document(client, endpoint, settings)
            document, raw = _decode_document(body)

            actual_crc = key_checksum(raw)
            if actual_crc != document.crc:
                msg = f"Key checksum mismatch: declared {document.crc}, computed {actual_crc}"
                logger.error(msg)
                raise KeyIntegrityError(msg)
            logger.debug(f"Key checksum verified ({actual_crc})")

            public_key = load_public_key(raw)
            span.set_attribute("kcc.key.algorithm", document.algorithm)
            span.set_attribute("kcc.key.size", public_key.key_size)
            span.set_status(Status(StatusCode.OK))

            return PublicKeyMaterial(
                algorithm=document.algorithm,
                key_bytes=raw,
                crc=document.crc,
                public_key=public_key,
            )
        except CoreasonKccError as e:
            logger.error(f"Failed to get key: {e}")
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
