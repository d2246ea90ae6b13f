"""
statevc - version control for game-state documents.
"""

__version__ = "0.1.0"
__logo__ = "🎲"
