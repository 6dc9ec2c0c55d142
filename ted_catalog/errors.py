"""
Error taxonomy
Every error a caller can see carries a stable code and an HTTP status.
"""


class CatalogError(Exception):
    code = "5000"
    status_code = 500
    message = "Internal error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class InvalidInput(CatalogError):
    code = "400"
    status_code = 400
    message = "Invalid request"


class NotFound(CatalogError):
    code = "404"
    status_code = 404
    message = "Video is not in the catalog"


class UpstreamUnavailable(CatalogError):
    code = "2000"
    status_code = 502
    message = "TED page could not be fetched"


class NoStreamAvailable(CatalogError):
    code = "2001"
    status_code = 422
    message = "Talk has no playable video"


class NoLanguageData(CatalogError):
    code = "2002"
    status_code = 422
    message = "Talk has no language data"


class ParseFailure(CatalogError):
    code = "2003"
    status_code = 422
    message = "TED page could not be parsed"


class UnsupportedLanguage(CatalogError):
    code = "2004"
    status_code = 422
    message = "Talk is not available in your language"


class StoreInconsistency(CatalogError):
    code = "2005"
    status_code = 500
    message = "Catalog references a missing video"


class StoreError(CatalogError):
    code = "5000"
    status_code = 500
    message = "Storage error"


# Internal errors, translated before they reach a caller

class FetchError(Exception):
    """Network failure, non-2xx status or empty body."""


class ParseError(Exception):
    """Expected structure is absent from the document."""


class DuplicateTalkError(Exception):
    """The talk id is already indexed by another ingestion."""

    def __init__(self, talk_id):
        super().__init__(f"talk_id already indexed: {talk_id}")
        self.talk_id = talk_id
