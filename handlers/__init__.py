"""
handlers/ - Presentation Layer
================================
Telegram bot handlers. Each handler turns an update into a relay event,
delegates to RelayService, and lets it send every response.
No relay logic lives here.
"""
