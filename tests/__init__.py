# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for MySQLAlchemy.

Every test runs against a scripted in-memory connection; no MySQL server is required.
"""
