"""
Token exchange package.

Posts the authorization code to the token endpoint with HTTP Basic client
authentication and shapes the JSON reply into a ``TokenResponse``.
"""
