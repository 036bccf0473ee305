"""
State store package.

Tracks the state values handed out with each authorization redirect so a
callback can be matched to a sign-in attempt this service started. A value
is redeemable once; check-and-delete is atomic.
"""
