# API error types
class APIError(Exception):
    """Base error carrying the HTTP status it should be surfaced with"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class NotFoundError(APIError):
    """A lookup expected at least one row and found none"""
    status_code = 404


class ValidationError(APIError):
    """Bad input: missing referenced row, bad upload, duplicate username"""
    status_code = 400


class StoreError(APIError):
    """Unexpected failure coming from the database"""
    status_code = 500
