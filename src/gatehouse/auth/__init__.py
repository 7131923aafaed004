"""Authentication primitives.

Learn: Everything here is stateless and cheap to test:
1. password.py → bcrypt hashing, email normalization, password policy
2. tokens.py → signing and verifying session tokens (PyJWT)
3. dependencies.py → FastAPI dependencies that pull the session token
   off the request and hand it to the AuthService

Stateful decisions (does this session still exist? which account is
this?) live in gatehouse.services.
"""
