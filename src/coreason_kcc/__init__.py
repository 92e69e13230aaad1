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
Encrypted configuration delivery client for keycloak-config services.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client import ConfigClient
from .config import KccSettings
from .exceptions import (
    CoreasonKccError,
    EncryptionCapacityError,
    KeyFormatError,
    KeyIntegrityError,
    NetworkError,
    SerializationError,
    ServerRejected,
)
from .models import BlueprintDescriptor, ClientState, RealmConfiguration, SplitConfiguration, UserCredential

__all__ = [
    "BlueprintDescriptor",
    "ClientState",
    "ConfigClient",
    "CoreasonKccError",
    "EncryptionCapacityError",
    "KccSettings",
    "KeyFormatError",
    "KeyIntegrityError",
    "NetworkError",
    "RealmConfiguration",
    "SerializationError",
    "ServerRejected",
    "SplitConfiguration",
    "UserCredential",
]
