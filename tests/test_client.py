# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

import json
import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

from coreason_kcc.client import ConfigClient
from coreason_kcc.config import KccSettings
from coreason_kcc.exceptions import (
    CoreasonKccError,
    EncryptionCapacityError,
    KeyIntegrityError,
    NetworkError,
    ServerRejected,
)
from coreason_kcc.models import BlueprintDescriptor, ClientState


def test_connect_returns_ready_client(
    http_client: httpx.Client, settings: KccSettings, endpoint: str, public_der: bytes, service: Any
) -> None:
    client = ConfigClient.connect(settings=settings, http_client=http_client)

    assert client.state == ClientState.READY
    assert client.endpoint == endpoint
    assert client.key.key_bytes == public_der
    assert client.key.algorithm == "RSA"
    # Exactly one key fetch, nothing else
    assert [(r.method, r.url.path) for r in service.requests] == [("GET", "/v1/keys")]


def test_connect_endpoint_argument_overrides_settings(http_client: httpx.Client, service: Any) -> None:
    client = ConfigClient.connect("https://other.test/", settings=KccSettings(), http_client=http_client)

    assert client.endpoint == "https://other.test"
    assert client.settings.endpoint == "https://other.test"
    assert str(service.requests[0].url) == "https://other.test/v1/keys"


def test_connect_without_endpoint(http_client: httpx.Client) -> None:
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(CoreasonKccError, match="No configuration service endpoint"):
            ConfigClient.connect(settings=KccSettings(), http_client=http_client)


@pytest.mark.parametrize("endpoint_argument", ["ftp://x", "not-a-url"])
def test_connect_rejects_invalid_endpoint(http_client: httpx.Client, service: Any, endpoint_argument: str) -> None:
    with pytest.raises(CoreasonKccError, match="Invalid client settings") as exc_info:
        ConfigClient.connect(endpoint_argument, http_client=http_client)

    assert type(exc_info.value) is CoreasonKccError
    assert service.requests == []


def test_connect_rejects_invalid_environment(http_client: httpx.Client) -> None:
    with patch.dict(os.environ, {"COREASON_KCC_HTTP_TIMEOUT": "-1"}):
        with pytest.raises(CoreasonKccError, match="Invalid client settings"):
            ConfigClient.connect("https://kcc.test", http_client=http_client)


def test_connect_reads_endpoint_from_environment(http_client: httpx.Client) -> None:
    with patch.dict(os.environ, {"COREASON_KCC_ENDPOINT": "https://env.test"}):
        client = ConfigClient.connect(http_client=http_client)
    assert client.endpoint == "https://env.test"


def test_connect_fails_on_checksum_mismatch(
    settings: KccSettings, key_document: dict[str, Any], fake_service: Callable[..., Any]
) -> None:
    """A tampered key never yields a client."""
    service = fake_service({**key_document, "crc": (key_document["crc"] + 1) % 2**32})
    with httpx.Client(transport=httpx.MockTransport(service)) as http_client:
        with pytest.raises(KeyIntegrityError):
            ConfigClient.connect(settings=settings, http_client=http_client)


def test_connect_closes_internal_client_on_failure(
    settings: KccSettings, key_document: dict[str, Any], fake_service: Callable[..., Any]
) -> None:
    internal = httpx.Client(transport=httpx.MockTransport(fake_service({**key_document, "crc": 0})))

    with (
        patch("coreason_kcc.client.build_http_client", return_value=internal) as mock_build,
        patch("coreason_kcc.client.HTTPXClientInstrumentor") as mock_instrumentor,
    ):
        with pytest.raises(KeyIntegrityError):
            ConfigClient.connect(settings=settings)

    mock_build.assert_called_once()
    mock_instrumentor.return_value.instrument_client.assert_called_once_with(internal)
    assert internal.is_closed


def test_connect_closes_internal_client_on_undecodable_key_response(settings: KccSettings) -> None:
    """A body that cannot be decompressed surfaces as NetworkError and still releases the client."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

    internal = httpx.Client(transport=httpx.MockTransport(handler))

    with (
        patch("coreason_kcc.client.build_http_client", return_value=internal),
        patch("coreason_kcc.client.HTTPXClientInstrumentor"),
    ):
        with pytest.raises(NetworkError):
            ConfigClient.connect(settings=settings)

    assert internal.is_closed


def test_context_manager_closes_internal_client(settings: KccSettings, service: Any) -> None:
    internal = httpx.Client(transport=httpx.MockTransport(service))

    with (
        patch("coreason_kcc.client.build_http_client", return_value=internal),
        patch("coreason_kcc.client.HTTPXClientInstrumentor"),
    ):
        with ConfigClient.connect(settings=settings) as client:
            assert client.state == ClientState.READY

    assert internal.is_closed


def test_context_manager_leaves_external_client_open(http_client: httpx.Client, settings: KccSettings) -> None:
    with ConfigClient.connect(settings=settings, http_client=http_client):
        pass
    assert not http_client.is_closed


def test_client_is_read_only(http_client: httpx.Client, settings: KccSettings) -> None:
    client = ConfigClient.connect(settings=settings, http_client=http_client)
    with pytest.raises(AttributeError):
        client.endpoint = "https://evil.test"  # type: ignore[misc]
    with pytest.raises(AttributeError):
        client.key = None  # type: ignore[misc,assignment]


def test_send_blueprint_is_plaintext(http_client: httpx.Client, settings: KccSettings, service: Any) -> None:
    client = ConfigClient.connect(settings=settings, http_client=http_client)
    descriptor = BlueprintDescriptor(blueprint_id="bp", client_id="vdc", default_redirect_uri="https://vdc/*")

    ack = client.send_blueprint(descriptor)

    assert ack == "init answered 200"
    init = service.requests[-1]
    assert init.url.path == "/v1/init"
    assert json.loads(init.content) == {
        "blueprintID": "bp",
        "clientId": "vdc",
        "defaultRedirectUri": "https://vdc/*",
    }


def test_send_blueprint_rejected(settings: KccSettings, fake_service: Callable[..., Any]) -> None:
    service = fake_service(init_status=409)
    with httpx.Client(transport=httpx.MockTransport(service)) as http_client:
        client = ConfigClient.connect(settings=settings, http_client=http_client)
        with pytest.raises(ServerRejected) as exc_info:
            client.send_blueprint(BlueprintDescriptor(blueprint_id="bp", client_id="vdc"))

    assert exc_info.value.status_code == 409
    assert exc_info.value.body == "init answered 409"


def test_small_config_is_one_message(
    http_client: httpx.Client,
    settings: KccSettings,
    service: Any,
    make_config: Callable[..., Any],
    decrypt: Callable[..., bytes],
) -> None:
    """A configuration at or below the threshold is delivered whole in a single message."""
    config = make_config(1)
    assert len(config.to_wire()) <= 256

    client = ConfigClient.connect(settings=settings, http_client=http_client)
    assert client.send_config(config) == 1

    assert len(service.config_requests) == 1
    request = service.config_requests[0]
    assert request.url.path == "/v1/bp"
    assert request.headers["Content-Type"] == "text/plain"
    assert decrypt(request.content) == config.to_wire()


def test_oversized_config_is_one_message_per_user(
    http_client: httpx.Client,
    settings: KccSettings,
    service: Any,
    make_config: Callable[..., Any],
    decrypt: Callable[..., bytes],
) -> None:
    config = make_config(4)
    assert len(config.to_wire()) > 256

    client = ConfigClient.connect(settings=settings, http_client=http_client)
    assert client.send_config(config) == 4

    assert len(service.config_requests) == 4
    for request, user in zip(service.config_requests, config.users, strict=True):
        payload = json.loads(decrypt(request.content))
        assert request.url.path == "/v1/bp"
        assert payload["blueprintID"] == "bp"
        assert payload["roles"] == ["admin", "dev", "ops"]
        assert len(payload["users"]) == 1
        assert payload["users"][0]["username"] == user.username
        assert payload["users"][0]["password"] == user.password.get_secret_value()
        assert payload["users"][0]["realmRoles"] == list(user.roles)


def test_split_delivery_stops_at_first_failure(
    settings: KccSettings, fake_service: Callable[..., Any], make_config: Callable[..., Any]
) -> None:
    """Three users over the threshold; the second push fails, the first stays delivered."""
    service = fake_service(config_statuses=[200, 500, 200])
    config = make_config(3)
    assert len(config.to_wire()) > 256

    with httpx.Client(transport=httpx.MockTransport(service)) as http_client:
        client = ConfigClient.connect(settings=settings, http_client=http_client)
        with pytest.raises(ServerRejected) as exc_info:
            client.send_config(config)

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "config answered 500"
    # The third user is never attempted
    assert len(service.config_requests) == 2


def test_config_status_201_is_failure(
    settings: KccSettings, fake_service: Callable[..., Any], make_config: Callable[..., Any]
) -> None:
    with httpx.Client(transport=httpx.MockTransport(fake_service(config_statuses=[201]))) as http_client:
        client = ConfigClient.connect(settings=settings, http_client=http_client)
        with pytest.raises(ServerRejected):
            client.send_config(make_config(1))


def test_split_threshold_is_configurable(
    http_client: httpx.Client, endpoint: str, service: Any, make_config: Callable[..., Any]
) -> None:
    config = make_config(2, password_length=4)
    assert len(config.to_wire()) <= 256

    client = ConfigClient.connect(settings=KccSettings(endpoint=endpoint, split_threshold=64), http_client=http_client)
    assert client.send_config(config) == 2


def test_single_user_too_large_for_key(
    http_client: httpx.Client, settings: KccSettings, service: Any, make_config: Callable[..., Any]
) -> None:
    """A user that does not fit into one RSA block fails loudly instead of being truncated."""
    config = make_config(1, password_length=400)
    client = ConfigClient.connect(settings=settings, http_client=http_client)

    with pytest.raises(EncryptionCapacityError):
        client.send_config(config)
    assert service.config_requests == []


def test_network_failure_during_push(
    settings: KccSettings, key_document: dict[str, Any], make_config: Callable[..., Any]
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/keys":
            return httpx.Response(200, json=key_document)
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
        client = ConfigClient.connect(settings=settings, http_client=http_client)
        with pytest.raises(NetworkError):
            client.send_config(make_config(1))


def test_undecodable_push_response(
    settings: KccSettings, key_document: dict[str, Any], make_config: Callable[..., Any]
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/keys":
            return httpx.Response(200, json=key_document)
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

    with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
        client = ConfigClient.connect(settings=settings, http_client=http_client)
        with pytest.raises(NetworkError) as exc_info:
            client.send_config(make_config(1))

    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)


def test_undeclared_roles_are_still_sent(
    http_client: httpx.Client, settings: KccSettings, service: Any, make_config: Callable[..., Any]
) -> None:
    config = make_config(1).model_copy(update={"roles": ("viewer",)})
    client = ConfigClient.connect(settings=settings, http_client=http_client)

    with patch("coreason_kcc.client.logger") as mock_logger:
        assert client.send_config(config) == 1

    assert any("admin" in str(call) for call in mock_logger.warning.call_args_list)


def test_zero_user_config(
    http_client: httpx.Client, settings: KccSettings, service: Any, make_config: Callable[..., Any]
) -> None:
    client = ConfigClient.connect(settings=settings, http_client=http_client)
    assert client.send_config(make_config(0)) == 1
    assert len(service.config_requests) == 1


def test_close_is_noop_for_external_client(settings: KccSettings, endpoint: str) -> None:
    external = MagicMock(spec=httpx.Client)
    client = ConfigClient(endpoint, MagicMock(), settings, external)
    client.close()
    external.close.assert_not_called()
