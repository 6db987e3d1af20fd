"""Simonkey analytics backend.

KPI aggregation, notebook freeze scheduling and institution rankings for the
Simonkey learning platform, served over a generic document store.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
