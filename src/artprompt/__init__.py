"""
Art Prompt Ledger

Identity and vote reconciliation for recurring art-prompt contests.
"""

__version__ = "1.0.0"
