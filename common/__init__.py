"""
Shared building blocks: the decoded image type, typed errors, JSON logging
and small numeric helpers.
"""

__version__ = "0.1.0"
