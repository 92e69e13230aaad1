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
Loads blueprints and realm configurations from JSON files.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from coreason_kcc.exceptions import SerializationError
from coreason_kcc.models import BlueprintDescriptor, RealmConfiguration


def _read_json_object(path: str | Path) -> dict[str, Any]:
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SerializationError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SerializationError(f"{path} must contain a JSON object, got {type(data).__name__}")
    return data


def load_blueprint(path: str | Path) -> BlueprintDescriptor:
    """
    Loads a blueprint descriptor file ({"blueprintID", "clientId", "defaultRedirectUri"}).

    Raises:
        OSError: If the file cannot be read.
        SerializationError: If the content is not a valid blueprint descriptor.
    """
    data = _read_json_object(path)
    try:
        return BlueprintDescriptor.model_validate(data)
    except ValidationError as e:
        raise SerializationError(f"{path} is not a valid blueprint: {e}") from e


def load_realm_configuration(path: str | Path, blueprint_id: str | None = None) -> RealmConfiguration:
    """
    Loads a realm configuration file ({"blueprintID", "roles", "users"}).

    Args:
        path: The file to load.
        blueprint_id: Blueprint to use when the file does not name one. A blueprintID in the file wins.

    Raises:
        OSError: If the file cannot be read.
        SerializationError: If the content is not a valid realm configuration.
    """
    data = _read_json_object(path)
    if blueprint_id:
        data = {"blueprintID": blueprint_id, **data}
    try:
        return RealmConfiguration.model_validate(data)
    except ValidationError as e:
        raise SerializationError(f"{path} is not a valid realm configuration: {e}") from e
