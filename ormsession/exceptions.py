"""Exception hierarchy for the session store."""


class SessionStoreError(Exception):
    """Base class for all session store errors"""
    pass


class ConfigurationError(SessionStoreError):
    """Raised when the store is constructed with an unusable configuration"""
    pass


class CodecError(SessionStoreError):
    """Raised when a value cannot be encoded to or decoded from a token"""
    pass


class EncodeError(CodecError):
    pass


class DecodeError(CodecError):
    pass


class SessionPersistenceError(SessionStoreError):
    """Raised when a database operation on the sessions table fails"""
    pass


class SessionConflictError(SessionPersistenceError):
    """Raised when a new session row collides with an existing primary key"""
    pass
