# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

import base64
import zlib
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from pydantic import SecretStr

from coreason_kcc.config import KccSettings
from coreason_kcc.models import RealmConfiguration, UserCredential

ENDPOINT = "https://kcc.test"


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    """
    A 3072 bit key, so every configuration at or below the 256 byte split threshold
    fits into a single RSA-OAEP-SHA256 block (capacity 318 bytes).
    """
    return rsa.generate_private_key(public_exponent=65537, key_size=3072)


@pytest.fixture(scope="session")
def public_der(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture
def key_document(public_der: bytes) -> dict[str, Any]:
    return {
        "algorithm": "RSA",
        "key": base64.b64encode(public_der).decode("ascii"),
        "crc": zlib.crc32(public_der),
    }


class FakeService:
    """
    In-memory configuration service for httpx.MockTransport.

    Config pushes are answered with the queued statuses in order, then with 200.
    """

    def __init__(
        self,
        key_document: dict[str, Any],
        init_status: int = 200,
        config_statuses: list[int] | None = None,
    ) -> None:
        self.key_document = key_document
        self.init_status = init_status
        self.config_statuses = list(config_statuses or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path == "/v1/keys":
            return httpx.Response(200, json=self.key_document)
        if request.method == "POST" and path == "/v1/init":
            return httpx.Response(self.init_status, text=f"init answered {self.init_status}")
        if request.method == "POST" and path.startswith("/v1/"):
            status = self.config_statuses.pop(0) if self.config_statuses else 200
            return httpx.Response(status, text=f"config answered {status}")
        return httpx.Response(404, text="not found")

    @property
    def config_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST" and r.url.path != "/v1/init"]


@pytest.fixture
def endpoint() -> str:
    return ENDPOINT


@pytest.fixture
def settings(endpoint: str) -> KccSettings:
    return KccSettings(endpoint=endpoint)


@pytest.fixture
def fake_service(key_document: dict[str, Any]) -> Callable[..., FakeService]:
    """Factory for services answering with the test key, or with an overridden key document."""

    def factory(
        document: dict[str, Any] | None = None,
        init_status: int = 200,
        config_statuses: list[int] | None = None,
    ) -> FakeService:
        return FakeService(document or key_document, init_status=init_status, config_statuses=config_statuses)

    return factory


@pytest.fixture
def service(fake_service: Callable[..., FakeService]) -> FakeService:
    return fake_service()


@pytest.fixture
def http_client(service: FakeService) -> Generator[httpx.Client, None, None]:
    with httpx.Client(transport=httpx.MockTransport(service)) as client:
        yield client


@pytest.fixture
def decrypt(private_key: rsa.RSAPrivateKey) -> Callable[..., bytes]:
    """Reverses what the client puts on the wire: base64(RSA-OAEP-SHA256(plaintext))."""

    def _decrypt(body: bytes, key: rsa.RSAPrivateKey | None = None) -> bytes:
        return (key or private_key).decrypt(
            base64.b64decode(body),
            padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
        )

    return _decrypt


@pytest.fixture
def make_config() -> Callable[..., RealmConfiguration]:
    """
    Builds a configuration with `user_count` users; long passwords push it over the split threshold.

    Roles alternate between ("admin",) for odd and ("dev", "ops") for even user numbers.
    """

    def factory(user_count: int, password_length: int = 40, blueprint_id: str = "bp") -> RealmConfiguration:
        return RealmConfiguration(
            blueprint_id=blueprint_id,
            roles=("admin", "dev", "ops"),
            users=tuple(
                UserCredential(
                    username=f"user-{i}",
                    password=SecretStr("p" * password_length),
                    roles=(("admin",) if i % 2 else ("dev", "ops")),
                )
                for i in range(1, user_count + 1)
            ),
        )

    return factory
