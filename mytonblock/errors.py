class MytonblockError(Exception):
    pass


class FormatError(MytonblockError):
    """
    Malformed binary data: bad magic, truncated buffer, over-capacity cell,
    dangling/backward/self reference, depth limit exceeded
    """


class ProofError(MytonblockError):
    """
    Hash mismatch, inconsistent pruning or failed update grafting
    """


class IncompleteDataError(MytonblockError):
    """
    Content was requested but only a pruned stub is available
    """
    def __init__(self, message, cell_hash=None):
        super().__init__(message)
        self.cell_hash = cell_hash


class SchemaError(MytonblockError):
    """
    Cell shape does not match the expected TL-B type
    """
    def __init__(self, message, record=None, record_hash=None):
        super().__init__(message)
        self.record = record
        self.record_hash = record_hash

    def __str__(self):
        text = super().__str__()
        if self.record is None:
            return text
        return f"{self.record} {self.record_hash}: {text}"
