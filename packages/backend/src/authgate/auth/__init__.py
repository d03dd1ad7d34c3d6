"""Authentication primitives.

Learn: Two ways to prove who you are, one identity at the end:
1. Local → email/password → bcrypt verification
2. OAuth → provider callback → normalized ExternalProfile

Both resolve to a single User, which gets a JWT access/refresh pair.
"""
