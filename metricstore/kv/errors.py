class KVError(Exception):
    """
    Base class for failures raised by a key-value store connector.
    """
    pass


class TableNotFoundError(KVError):
    pass


class TableExistsError(KVError):
    pass


class MutationsRejectedError(KVError):
    pass


class VisibilityParseError(KVError):
    pass
