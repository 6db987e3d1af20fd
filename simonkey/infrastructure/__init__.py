# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for Simonkey.

- documents: Document store abstraction and backends
- background: Dramatiq actors and the periodic job scheduler
"""
