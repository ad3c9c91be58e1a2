# BookingX API access control.
# Created: 2026-02-20
#
# OAuth2 authorization server, API key authenticator, fixed-window rate
# limiter and the request pipeline that composes them.
