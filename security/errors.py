class LoginDefenseError(Exception):
    """Base class for errors raised by the login defense layer."""


class StoreUnavailable(LoginDefenseError):
    """The fast store or the relational store is unreachable or timed out."""


class InvalidInput(LoginDefenseError):
    """A malformed IP address or identifier, rejected before any store is touched."""


class ConcurrentUpdateConflict(LoginDefenseError):
    """A conditional update matched no row because another writer got there first."""


class UserNotFound(LoginDefenseError, LookupError):
    """The account row is gone, e.g. deleted while an attempt was in flight."""
