import logging
import sys
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_FORMATS = {
    "pretty": "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s",
    "logfmt": "ts=%(asctime)s level=%(levelname)s logger=%(name)s request_id=%(request_id)s msg=%(message)r",
}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(log_level: str, log_format: str = "pretty") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        logging.Formatter(_FORMATS.get(log_format, _FORMATS["pretty"]), datefmt="%Y-%m-%dT%H:%M:%S"),
    )
    logging.basicConfig(level=log_level.upper(), handlers=[handler], force=True)
