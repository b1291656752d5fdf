class ConfigurationError(Exception):
    """
    Raised for programming or configuration defects: invalid potential levels,
    unknown indicator kinds, missing feedback event mappings, no log store.
    Never retried.
    """
