"""BlockStore custom exception module."""


class BlockStoreNotStarted(Exception):
    """Custom exception thrown when a block operation is requested from a store that
    has not been started (it holds no backend container handle)."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors


class InvalidStoreLocation(Exception):
    """Custom exception thrown when a store location string cannot be turned into a
    container uri and credentials (ex. missing host or shared access signature)."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors


class UnsupportedStoreScheme(Exception):
    """Custom exception thrown when a registry is asked to initialize a store for a
    location whose scheme has not been registered."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors


class UnsupportedAlgorithm(Exception):
    """Custom exception thrown when a given algorithm has no content identifier code
    and cannot be used to address blocks."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors
