"""
Authorization endpoint redirect construction.
"""

from urllib.parse import urlencode

from shared.logging import get_logger
from ..state.store import StateStore


class AuthorizationRedirector:
    """Builds the authorize-endpoint URL for a new sign-in attempt."""

    def __init__(self, authorize_url: str, state_store: StateStore):
        self.authorize_url = authorize_url
        self.state_store = state_store
        self.logger = get_logger("signin.authorize")

    def build_redirect(self, client_id: str, redirect_uri: str, scope: str) -> str:
        """Issue a fresh state token and return the URL to send the user agent to."""
        state = self.state_store.issue()

        query = urlencode([
            ("response_type", "code"),
            ("client_id", client_id),
            ("redirect_uri", redirect_uri),
            ("scope", scope),
            ("state", state),
        ])

        self.logger.info("Authorization redirect built", client_id=client_id, scope=scope)
        return f"{self.authorize_url}?{query}"
