"""
Exceptions raised by mongo-uri-doctor.

Only two conditions are ever raised: a connection string without a scheme
separator, and a run started without any connection string at all. Everything
else (analysis defects, probe failures) is reported as data.
"""


class DoctorError(Exception):
    """Base class for mongo-uri-doctor errors"""
    pass


class MalformedURI(DoctorError, ValueError):
    """Raised when a connection string lacks the mandatory '://' separator"""

    def __init__(self, raw: str, reason: str = "missing '://' separator"):
        self.raw = raw
        self.reason = reason
        # The raw string may hold a password; it is kept on .raw only
        super().__init__(f"Malformed connection string ({reason})")


class MissingConnectionString(DoctorError, RuntimeError):
    """Raised when no connection string is configured"""

    def __init__(self, variable: str = "MONGO_URI"):
        self.variable = variable
        super().__init__(f"{variable} is not set")
