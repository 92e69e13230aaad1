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
Internal data models for the coreason-kcc package.
These are not exposed in the public API.
"""

from pydantic import BaseModel, ConfigDict, Field


class KeyDocument(BaseModel):
    """
    Key document returned by GET {endpoint}/v1/keys.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    algorithm: str = Field(..., description="The key algorithm announced by the service.")
    key: str = Field(..., description="Base64 (standard alphabet) of the PKIX/SPKI DER public key.")
    crc: int = Field(..., ge=0, le=0xFFFFFFFF, description="CRC-32 (IEEE) of the decoded key bytes.")
