"""Authentication.

Learn: Users log in with email/password and get back a signed session
token. The token proves *who* issued it; the user_sessions table decides
whether it is still *live*. Both must pass before a request is let in:

1. tokens.py       → sign / verify JWTs, record and revoke sessions
2. dependencies.py → the per-request gate (Depends(get_current_session))
3. password.py     → bcrypt hashing
"""
