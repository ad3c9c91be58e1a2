# BookingX API HTTP layer.
# Created: 2026-02-20
#
# Versioned REST endpoints mounted at /api/v1/, plus the credential managers
# they front (API keys, OAuth2).
