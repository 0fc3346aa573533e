"""
models/ - Domain Layer
======================
Plain dataclasses describing users and their conversation state.
No database or Telegram code lives here.
"""
