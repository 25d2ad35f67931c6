"""Devlink - social graph service for a developer network.

This package provides functionality for:
- Following and unfollowing other developers
- Listing followers and followed users with pagination
- Suggesting developers to follow
"""

__version__ = "1.0.0"
