"""
Token authentication for front-desk staff.

Kept in its own module so REST framework can import it from settings
without pulling in views.  The core services never authenticate anyone;
they receive ``request.user`` as the acting staff member.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>`` for staff accounts.

    Deactivated staff are rejected by the parent class.
    """

    keyword = 'Token'

    def authenticate_header(self, request):
        return f'{self.keyword} realm="frontdesk"'
