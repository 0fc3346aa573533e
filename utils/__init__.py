"""
utils/ - Shared Helpers
=======================
Logging setup and the exception hierarchy used by every layer.
"""
