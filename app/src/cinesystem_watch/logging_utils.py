import logging
import uuid
from contextvars import ContextVar

_run_id: ContextVar[str] = ContextVar("run_id", default="-")


class RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id.get()
        return True


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def set_run_id(run_id: str) -> None:
    _run_id.set(run_id)


def get_run_id() -> str:
    return _run_id.get()


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.addFilter(RunIdFilter())
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s run_id=%(run_id)s %(message)s")
    )
    root.addHandler(handler)
    resolved = logging.getLevelName(str(level).strip().upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
