from enum import Enum


class ErrorKind(str, Enum):
    INVALID_URL = "InvalidUrl"
    DNS_UNAVAILABLE = "DnsUnavailable"
    NETWORK_ERROR = "NetworkError"
    HTTP_ERROR = "HttpError"
    NON_HTML_CONTENT = "NonHtmlContent"
    EXTRACTION_FAILURE = "ExtractionFailure"
    FACTOR_ANALYSIS_FAILURE = "FactorAnalysisFailure"


class SeoAuditError(Exception):
    kind: ErrorKind = ErrorKind.NETWORK_ERROR

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.url = url


class InvalidUrlError(SeoAuditError, ValueError):
    kind = ErrorKind.INVALID_URL


class DnsUnavailableError(SeoAuditError):
    kind = ErrorKind.DNS_UNAVAILABLE


class NetworkError(SeoAuditError):
    kind = ErrorKind.NETWORK_ERROR


class HttpError(SeoAuditError):
    kind = ErrorKind.HTTP_ERROR

    def __init__(self, message: str, status_code: int, url: str | None = None):
        super().__init__(message, url)
        self.status_code = status_code


class NonHtmlContentError(SeoAuditError):
    kind = ErrorKind.NON_HTML_CONTENT


class PageExtractionError(SeoAuditError):
    kind = ErrorKind.EXTRACTION_FAILURE


class FactorAnalysisFailure(SeoAuditError):
    kind = ErrorKind.FACTOR_ANALYSIS_FAILURE

    def __init__(self, message: str, factor_name: str):
        super().__init__(message)
        self.factor_name = factor_name
