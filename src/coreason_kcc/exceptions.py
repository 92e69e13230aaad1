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
Custom exceptions for the coreason-kcc package.
"""


class CoreasonKccError(Exception):
    """Base exception for all coreason-kcc errors."""


class NetworkError(CoreasonKccError):
    """Raised when the configuration service cannot be reached (connection or IO failure)."""


class KeyIntegrityError(CoreasonKccError):
    """
    Raised when the checksum of the fetched key does not match the declared checksum.
    The key material is never parsed or used when this is raised.
    """


class KeyFormatError(CoreasonKccError):
    """Raised when the key bytes do not decode to a usable RSA public key."""


class EncryptionCapacityError(CoreasonKccError):
    """
    Raised when a plaintext does not fit into a single RSA-OAEP block.
    Seeing this after splitting means a single user does not fit into one message.
    """


class SerializationError(CoreasonKccError):
    """Raised when structured data is malformed or cannot be encoded."""


class ServerRejected(CoreasonKccError):
    """Raised when the service answers with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class OversizedResponseError(CoreasonKccError):
    """Raised when an HTTP response is too large."""
