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
Encryptor component for RSA-OAEP single-block encryption.
"""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from coreason_kcc.exceptions import EncryptionCapacityError
from coreason_kcc.utils.logger import logger

OAEP_HASH_BYTES = hashes.SHA256.digest_size


def _oaep_padding() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def oaep_capacity(key: RSAPublicKey) -> int:
    """
    Returns the largest plaintext, in bytes, that fits into one RSA-OAEP-SHA256 block.

    Args:
        key: The RSA public key.

    Returns:
        int: Modulus length minus the OAEP overhead (2 * hash length + 2).
    """
    modulus_bytes = (key.key_size + 7) // 8
    return max(modulus_bytes - 2 * OAEP_HASH_BYTES - 2, 0)


def encrypt(plaintext: bytes, key: RSAPublicKey) -> bytes:
    """
    Encrypts a serialized payload with RSA-OAEP (SHA-256, MGF1-SHA-256, no label).

    Padding randomness comes from the operating system CSPRNG.

    Args:
        plaintext: The serialized payload.
        key: The verified RSA public key of the service.

    Returns:
        bytes: The ciphertext, exactly one modulus length long.

    Raises:
        EncryptionCapacityError: If the plaintext exceeds the key's single-block capacity.
    """
    capacity = oaep_capacity(key)
    if len(plaintext) > capacity:
        logger.error(f"Payload of {len(plaintext)} bytes exceeds the RSA-OAEP capacity of {capacity} bytes")
        raise EncryptionCapacityError(
            f"Payload of {len(plaintext)} bytes exceeds the RSA-OAEP capacity of {capacity} bytes"
        )

    try:
        return key.encrypt(plaintext, _oaep_padding())
    except ValueError as e:
        # cryptography reports oversized input as ValueError
        raise EncryptionCapacityError(f"RSA-OAEP encryption failed: {e}") from e
