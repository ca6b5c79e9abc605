"""
Courtside Signal Engine.

Evaluates user-authored betting strategies against live basketball game
updates and tracks each resulting signal from its first trigger through
odds alignment to settlement.
"""

__version__ = "0.1.0"
