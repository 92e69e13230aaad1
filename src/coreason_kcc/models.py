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
Data models for the coreason-kcc package.
"""

from enum import StrEnum

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer, field_validator, model_validator
from pydantic_core import PydanticSerializationError

from coreason_kcc.encryptor import oaep_capacity
from coreason_kcc.exceptions import SerializationError


class ClientState(StrEnum):
    UNINITIALIZED = "uninitialized"
    KEY_ACQUIRED = "key_acquired"
    READY = "ready"
    FAILED = "failed"


class WireModel(BaseModel):
    """
    Base for every document exchanged with the configuration service.

    Wire documents are frozen and serialize to compact JSON using the service's field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> bytes:
        """
        Serializes the model to the UTF-8 JSON bytes sent over the wire.

        Raises:
            SerializationError: If the model cannot be encoded.
        """
        try:
            return self.model_dump_json(by_alias=True).encode("utf-8")
        except (PydanticSerializationError, UnicodeEncodeError) as e:
            raise SerializationError(f"Failed to serialize {type(self).__name__}: {e}") from e


class BlueprintDescriptor(WireModel):
    """
    Blueprint registration data, sent once per blueprint in plaintext.

    Attributes:
        blueprint_id (str): The blueprint (realm) identifier.
        client_id (str): The OAuth client identifier registered for the blueprint.
        default_redirect_uri (str): The default redirect URI of the client.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "blueprintID": "vdc-blueprint",
                "clientId": "vdc_client",
                "defaultRedirectUri": "https://vdc.example.com/*",
            }
        },
    )

    blueprint_id: str = Field(..., alias="blueprintID", min_length=1)
    client_id: str = Field(..., alias="clientId")
    default_redirect_uri: str = Field(default="", alias="defaultRedirectUri")


class UserCredential(WireModel):
    """
    A user to provision in a realm.

    The password is redacted from repr/str and only emitted in clear in the JSON wire form,
    which is always encrypted before it leaves the process.
    """

    username: str = Field(..., min_length=1)
    password: SecretStr
    roles: tuple[str, ...] = Field(default=(), alias="realmRoles")

    @field_serializer("password", when_used="json")
    def reveal_password(self, v: SecretStr) -> str:
        return v.get_secret_value()


class RealmConfiguration(WireModel):
    """
    The roles and users to provision under a blueprint.

    Attributes:
        blueprint_id (str): The blueprint the configuration belongs to.
        roles (tuple[str, ...]): Unique realm role names. Duplicates collapse to the first occurrence.
        users (tuple[UserCredential, ...]): Users in delivery order.
    """

    blueprint_id: str = Field(..., alias="blueprintID", min_length=1)
    roles: tuple[str, ...] = ()
    users: tuple[UserCredential, ...] = ()

    @field_validator("roles")
    @classmethod
    def unique_roles(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))

    def undeclared_roles(self) -> set[str]:
        """
        Returns the user roles that are not part of the configuration's role set.
        The service does not enforce this contract, so callers may warn about it.
        """
        declared = set(self.roles)
        return {role for user in self.users for role in user.roles if role not in declared}


class SplitConfiguration(RealmConfiguration):
    """
    A RealmConfiguration restricted to exactly one user, keeping the full role set.
    """

    @model_validator(mode="after")
    def single_user(self) -> "SplitConfiguration":
        if len(self.users) != 1:
            raise ValueError(f"A split configuration carries exactly one user, got {len(self.users)}")
        return self


class PublicKeyMaterial(BaseModel):
    """
    The service's verified public key.

    Only built after the declared checksum matched the raw key bytes and the bytes parsed as an RSA key.
    Frozen for the lifetime of the client that owns it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    algorithm: str
    key_bytes: bytes = Field(..., repr=False)
    crc: int = Field(..., ge=0, le=0xFFFFFFFF)
    public_key: RSAPublicKey = Field(..., repr=False, exclude=True)

    @property
    def modulus_bytes(self) -> int:
        return (self.public_key.key_size + 7) // 8

    @property
    def oaep_capacity(self) -> int:
        return oaep_capacity(self.public_key)
