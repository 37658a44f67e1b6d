"""
Playground Arena - matchmaking, session lifecycle and rating engine
for casual chat mini-games.
"""

__version__ = "1.0.0"
