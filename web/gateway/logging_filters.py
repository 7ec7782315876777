"""Logging filters that stamp records with request context."""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``record.request_id`` from ``REQUEST_ID_CTX`` ("-" outside a request).

    Attached to every handler in ``settings.LOGGING`` so formatters can
    reference ``%(request_id)s`` unconditionally, including for records
    emitted by the HTTP adapters and by notification dispatch.
    """

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True
