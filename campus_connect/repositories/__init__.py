"""
Repository Layer Package.

Data-access abstractions over the backend SQLite database.  Services
never touch ``db.sqlite`` directly; the client session cache is the one
documented exception.
"""

from campus_connect.repositories.base_repository import BaseRepository
from campus_connect.repositories.otp_repository import OtpChallengeRepository
from campus_connect.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "OtpChallengeRepository",
    "UserRepository",
]
