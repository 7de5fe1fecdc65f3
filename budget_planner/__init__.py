"""
Budget Planner - Source Package

Local-first synchronization and financial projection for a personal
budget planner backed by a thin CRUD API.

DESIGN PRINCIPLES:
1. Serve from the local cache first, fetch only when needed
2. Staleness is preferred over unavailability
3. Unconfirmed local edits are never silently overwritten
4. Projections are pure functions with one net-worth formula
5. Storage and remote API are swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Planner Team"
