"""
services/ - Relay Core
======================
Identity resolution, the conversation state machine, the callback token
protocol and the orchestrator that ties them together. Talks to Telegram only
through the Transport protocol and to the database only through repositories.
"""
