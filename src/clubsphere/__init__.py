"""
ClubSphere: club management API.

Clubs, events, memberships and club-manager applications with approval
workflows, served by FastAPI over MongoDB.
"""

__version__ = "1.0.0"
