"""
security/ - Abuse Protection
============================
Handler decorators that protect the relay from spam.
"""
