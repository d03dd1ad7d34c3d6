"""authgate — identity resolution and token lifecycle service.

Local email/password and OAuth sign-in that resolve to one canonical
user, stateless access/refresh tokens, and a shared admission gate
in front of the credential endpoints.
"""

__version__ = "0.1.0"
