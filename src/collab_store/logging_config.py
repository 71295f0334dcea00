import logging
import sys


class _SafeExtraFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.collection = getattr(record, "collection", "-")
        record.doc_id = getattr(record, "doc_id", "-")
        record.version = getattr(record, "version", "-")
        return super().format(record)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    formatter = _SafeExtraFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s collection=%(collection)s doc_id=%(doc_id)s version=%(version)s",
    )
    handler.setFormatter(formatter)

    root.setLevel(level.upper())
    root.addHandler(handler)
