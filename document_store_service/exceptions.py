"""Failure kinds surfaced by the folder/file hierarchy engine.

Each kind carries the HTTP status the API answers with; the handler in
``main.py`` renders them as ``{"detail": ..., "kind": ...}``.
"""


class HierarchyError(Exception):
    status_code = 500
    kind = "HierarchyError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(HierarchyError):
    status_code = 400
    kind = "InvalidArgument"


class NotFound(HierarchyError):
    status_code = 404
    kind = "NotFound"


class Conflict(HierarchyError):
    status_code = 409
    kind = "Conflict"


class Unsupported(HierarchyError):
    status_code = 405
    kind = "Unsupported"


class StorageFailure(HierarchyError):
    status_code = 500
    kind = "StorageFailure"
