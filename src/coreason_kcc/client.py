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
ConfigClient component for orchestrating encrypted configuration delivery.
"""

from typing import Any

import httpx
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_kcc.config import KccSettings
from coreason_kcc.encryptor import encrypt
from coreason_kcc.exceptions import CoreasonKccError
from coreason_kcc.key_acquirer import fetch_key
from coreason_kcc.models import BlueprintDescriptor, ClientState, PublicKeyMaterial, RealmConfiguration
from coreason_kcc.splitter import split_by_size
from coreason_kcc.transport import build_http_client, post_blueprint_init, post_encrypted_config
from coreason_kcc.utils.logger import logger

tracer = trace.get_tracer(__name__)


class ConfigClient:
    """
    Delivers blueprints and encrypted realm configurations to the configuration service.

    Build it with `ConfigClient.connect`. The endpoint and the verified key are fixed for the
    lifetime of the instance. A client is only ever handed out in the `ready` state.

    Delivery of a split configuration is not atomic: messages sent before a failure stay
    committed on the service.
    """

    def __init__(
        self,
        endpoint: str,
        key: PublicKeyMaterial,
        settings: KccSettings,
        http_client: httpx.Client,
        owns_http_client: bool = False,
    ) -> None:
        self._endpoint = endpoint
        self._key = key
        self._settings = settings
        self._client = http_client
        self._internal_client = owns_http_client
        self._state = ClientState.READY

    @classmethod
    def connect(
        cls,
        endpoint: str | None = None,
        *,
        settings: KccSettings | None = None,
        http_client: httpx.Client | None = None,
    ) -> "ConfigClient":
        """
        Fetches and verifies the service key and returns a ready client.

        Args:
            endpoint: The service base URL. Overrides `settings.endpoint` when given.
            settings: The client settings. Loaded from the environment if not provided.
            http_client: External HTTP client (optional). If not provided, one is built from the settings
                and closed by the returned client (or immediately, if connecting fails).

        Returns:
            ConfigClient: A client in the `ready` state.

        Raises:
            CoreasonKccError: If no endpoint is configured, or the settings are invalid.
            NetworkError: If the service cannot be reached.
            ServerRejected: If the key request is rejected.
            SerializationError: If the key document is malformed.
            KeyIntegrityError: If the key checksum does not match.
            KeyFormatError: If the key is not an RSA PKIX public key.
        """
        try:
            settings = settings or KccSettings()
            if endpoint is not None:
                settings = KccSettings(**{**settings.model_dump(), "endpoint": endpoint})
        except ValidationError as e:
            logger.error(f"Invalid client settings: {e}")
            raise CoreasonKccError(f"Invalid client settings: {e}") from e
        if settings.endpoint is None:
            raise CoreasonKccError("No configuration service endpoint configured")

        owns_client = http_client is None
        if http_client is None:
            http_client = build_http_client(settings)
            HTTPXClientInstrumentor().instrument_client(http_client)

        state = ClientState.UNINITIALIZED
        logger.debug(f"Connecting to configuration service at {settings.endpoint} (state: {state})")
        try:
            key = fetch_key(http_client, settings.endpoint, settings)
        except CoreasonKccError:
            state = ClientState.FAILED
            logger.error(f"Could not create client for {settings.endpoint} (state: {state})")
            if owns_client:
                http_client.close()
            raise

        state = ClientState.KEY_ACQUIRED
        logger.debug(f"Acquired {key.algorithm} key with {key.modulus_bytes * 8} bit modulus (state: {state})")

        client = cls(settings.endpoint, key, settings, http_client, owns_http_client=owns_client)
        logger.info(f"Configuration client ready for {settings.endpoint}")
        return client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def key(self) -> PublicKeyMaterial:
        return self._key

    @property
    def settings(self) -> KccSettings:
        return self._settings

    @property
    def state(self) -> ClientState:
        return self._state

    def __enter__(self) -> "ConfigClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Closes the HTTP client if it was created by this client."""
        if self._internal_client:
            self._client.close()

    def send_blueprint(self, descriptor: BlueprintDescriptor) -> str:
        """
        Registers a blueprint with the service.

        The descriptor carries no credentials and is sent unencrypted.

        Args:
            descriptor: The blueprint to register.

        Returns:
            str: The service response body.

        Raises:
            SerializationError: If the descriptor cannot be encoded.
            NetworkError: If the service cannot be reached.
            ServerRejected: If the service answers with status 300 or above.
        """
        with tracer.start_as_current_span("send_blueprint") as span:
            span.set_attribute("kcc.blueprint_id", descriptor.blueprint_id)
            try:
                ack = post_blueprint_init(self._client, self._endpoint, descriptor, self._settings)
            except CoreasonKccError as e:
                logger.error(f"Failed to send blueprint '{descriptor.blueprint_id}': {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(f"Blueprint '{descriptor.blueprint_id}' registered")
            span.set_status(Status(StatusCode.OK))
            return ack

    def send_config(self, config: RealmConfiguration) -> int:
        """
        Encrypts and delivers a realm configuration.

        A configuration whose serialized form fits the split threshold is sent as one message.
        Larger ones are sent as one message per user, in user order. Delivery stops at the first
        failure, which is raised; earlier messages are already committed on the service.

        Args:
            config: The configuration to deliver.

        Returns:
            int: The number of messages delivered.

        Raises:
            SerializationError: If the configuration cannot be encoded.
            EncryptionCapacityError: If a message does not fit into a single RSA block.
            NetworkError: If the service cannot be reached.
            ServerRejected: If the service answers with anything other than status 200.
        """
        with tracer.start_as_current_span("send_config") as span:
            span.set_attribute("kcc.blueprint_id", config.blueprint_id)

            undeclared = config.undeclared_roles()
            if undeclared:
                logger.warning(f"Users reference roles missing from the role set: {sorted(undeclared)}")

            delivered = 0
            try:
                for unit in split_by_size(config, self._settings.split_threshold):
                    self._deliver(unit)
                    delivered += 1
            except CoreasonKccError as e:
                logger.error(f"Config delivery for '{config.blueprint_id}' stopped after {delivered} message(s): {e}")
                span.set_attribute("kcc.messages.delivered", delivered)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(f"Config for '{config.blueprint_id}' delivered in {delivered} message(s)")
            span.set_attribute("kcc.messages.delivered", delivered)
            span.set_status(Status(StatusCode.OK))
            return delivered

    def _deliver(self, unit: RealmConfiguration) -> None:
        data = unit.to_wire()
        ciphertext = encrypt(data, self._key.public_key)
        post_encrypted_config(self._client, self._endpoint, unit.blueprint_id, ciphertext, self._settings)
