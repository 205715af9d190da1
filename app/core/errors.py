"""
Failure taxonomy for the content hierarchy.

Services raise these; app.main maps them onto HTTP responses so routers
don't have to translate every branch by hand.
"""


class HierarchyError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(HierarchyError):
    """Entity missing, or its ownership chain does not hold."""
    status_code = 404


class InvalidInputError(HierarchyError):
    status_code = 400


class StorageFailure(HierarchyError):
    """The database rejected the transaction. Nothing was applied."""
    status_code = 500


class ImageIOError(HierarchyError):
    """Writing or deleting an image file failed."""
    status_code = 500
