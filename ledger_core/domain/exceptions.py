"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Mutation input is malformed (bad magnitude, unknown account, ...)"""

    pass


class PersistenceFailure(DomainException):
    """Remote write was rejected or timed out"""

    pass


class StoreAPIError(PersistenceFailure):
    """Ledger store returned an error or is unavailable"""

    pass


class ResolutionFailure(DomainException):
    """No target account could be resolved for a recurring obligation"""

    pass
