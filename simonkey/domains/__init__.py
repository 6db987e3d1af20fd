# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain layer for Simonkey.

- kpi: Student and teacher dashboards
- notebooks: Scheduled freeze/unfreeze of notebooks
- rankings: Institution subject rankings
- stats: Per-user study statistics
"""
