"""
Token authentication for API clients of the portal.

Browser clients use the Django session cookie set at login; scripts and
mobile clients send ``Authorization: Token <key>`` instead.  Keeping the
class here gives settings a stable import path and avoids importing views
while DRF initialises its authentication classes.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Token`` keyword."""

    keyword = 'Token'
