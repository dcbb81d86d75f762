class ConfigurationError(ValueError):
    """
    Error raised when summation rules or templates are malformed.
    """


class AmbiguousRowError(ValueError):
    """
    Error raised when more than one parent row matches a summation key.
    """


class MissingInputError(ValueError):
    """
    Error raised when input files or directories are missing.
    """
