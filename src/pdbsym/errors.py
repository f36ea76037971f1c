class MSFError(Exception):
    """
    Base class for failures decoding a container.

    Every failure names the file and the operation that was attempted,
    the underlying exception (if any) is chained as __cause__.
    """
    def __init__(self, path, operation: str, detail: str = ''):
        self.path = str(path)
        self.operation = operation
        self.detail = detail
        super().__init__(str(self))

    def __str__(self):
        s = f"failed to {self.operation} {self.path}"
        return f"{s}: {self.detail}" if self.detail else s


class MSFIOError(MSFError):
    """open, seek, read or close of the underlying file failed"""


class MSFFormatError(MSFError):
    """file content doesn't match the container layout"""
