class CategorizerError(Exception):
    """Base class for every error raised by the categorizer."""


class ConfigurationError(CategorizerError):
    """Static configuration is unusable (e.g. a rule kit is too small).

    Raised at startup or seed time, never while serving a request.
    """


class AdapterError(CategorizerError):
    """The external batch classifier failed or answered garbage."""


class PersistenceError(CategorizerError):
    """A storage backend could not read or write a record."""


class ValidationError(CategorizerError):
    """Caller input was rejected before any work was done."""


class RuleNotFoundError(ValidationError):
    pass


class ReadOnlyRuleError(ValidationError):
    pass
