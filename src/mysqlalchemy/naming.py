# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
English-ish name inflection used for default table names and relation aliases.
"""

from __future__ import annotations

from .constants import NamingConstants


def pluralize(name: str) -> str:
    """Pluralize a lowercase name: ``post`` -> ``posts``, ``category`` -> ``categories``."""
    base = name.lower()
    if base.endswith("y") and base[-2:] not in NamingConstants.VOWEL_Y_ENDINGS:
        return base[:-1] + NamingConstants.PLURAL_Y_SUFFIX
    if base.endswith(NamingConstants.ES_ENDINGS):
        return base + NamingConstants.PLURAL_ES_SUFFIX
    return base + NamingConstants.PLURAL_SUFFIX


def singularize(name: str) -> str:
    """Inverse of :func:`pluralize` for the forms it produces."""
    base = name.lower()
    if base.endswith(NamingConstants.PLURAL_Y_SUFFIX):
        return base[: -len(NamingConstants.PLURAL_Y_SUFFIX)] + "y"
    for ending in NamingConstants.ES_ENDINGS:
        if base.endswith(ending + NamingConstants.PLURAL_ES_SUFFIX):
            return base[: -len(NamingConstants.PLURAL_ES_SUFFIX)]
    if base.endswith(NamingConstants.PLURAL_SUFFIX) and not base.endswith("ss"):
        return base[:-1]
    return base


def key_for(model_name: str, primary_key: str) -> str:
    """Default foreign key naming: ``User`` + ``id`` -> ``user_id``."""
    return f"{model_name}{NamingConstants.KEY_SEPARATOR}{primary_key}".lower()
