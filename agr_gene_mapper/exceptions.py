"""
exceptions.py

Error hierarchy of the gene mapper:
- GeneMappingError: base class for all mapping errors
- GeneMappingConfigurationError: missing/invalid configuration or required resources
- GeneCandidateRetrievalError: index I/O failures and malformed queries
- CacheRegistrationError: a candidate cache was registered twice for the same index
- InvalidStateError: access to fields that do not exist in the current state
"""


class GeneMappingError(Exception):
    pass


class GeneMappingConfigurationError(GeneMappingError):
    pass


class GeneCandidateRetrievalError(GeneMappingError):
    pass


class CacheRegistrationError(GeneMappingError):
    pass


class InvalidStateError(RuntimeError):
    pass
