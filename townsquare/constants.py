"""
townsquare.constants — Shared Constants
========================================

Single source of truth for limits and defaults.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Hierarchy & elections
# ---------------------------------------------------------------------------
# city → municipality → local is three tiers; leave headroom for odd data.
DEFAULT_MAX_HIERARCHY_DEPTH = 16

DEFAULT_ROUND_HOURS = 72
MAX_ROUND_HOURS = 24 * 30

# ---------------------------------------------------------------------------
# Field limits
# ---------------------------------------------------------------------------
MAX_PRINCIPAL_LENGTH = 64
MAX_COMMUNITY_NAME_LENGTH = 120
MAX_POST_LENGTH = 10_000
MAX_COMMENT_LENGTH = 2_000
MAX_MESSAGE_LENGTH = 4_000
MAX_URL_LENGTH = 500

# Page sizes for list endpoints
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
