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
Splitter component for decomposing oversized realm configurations.
"""

from collections.abc import Iterator

from coreason_kcc.config import DEFAULT_SPLIT_THRESHOLD
from coreason_kcc.models import RealmConfiguration, SplitConfiguration


def split_by_user(config: RealmConfiguration) -> Iterator[SplitConfiguration]:
    """
    Yields one single-user configuration per user, in order, each keeping the full role set.
    """
    for user in config.users:
        yield SplitConfiguration(
            blueprint_id=config.blueprint_id,
            roles=config.roles,
            users=(user,),
        )


def split_by_size(
    config: RealmConfiguration,
    threshold_bytes: int = DEFAULT_SPLIT_THRESHOLD,
) -> Iterator[RealmConfiguration]:
    """
    Decides the delivery units of a configuration.

    If the serialized configuration is at most `threshold_bytes` long, the configuration itself is the
    only unit. Otherwise it is split at user granularity, one unit per user. Users are never packed
    together, even when several would fit under the threshold.

    The result is a generator: it is consumed once and cannot be restarted.

    Args:
        config: The configuration to deliver.
        threshold_bytes: Size limit of the serialized configuration in bytes.

    Yields:
        RealmConfiguration: The units to encrypt and send, in order.

    Raises:
        SerializationError: If the configuration cannot be serialized.
    """
    if len(config.to_wire()) <= threshold_bytes:
        yield config
        return

    yield from split_by_user(config)
