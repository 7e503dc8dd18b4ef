"""
Campus Connect identity and session core.

Backend (FastAPI) and client library for credential login, OTP-gated
registration, token-backed sessions and role-scoped access control.
"""

__version__ = "1.0.0"
