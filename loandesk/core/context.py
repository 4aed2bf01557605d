import contextvars

_principal_id: contextvars.ContextVar[str] = contextvars.ContextVar("principal_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def set_principal_id(principal_id: str) -> None:
    _principal_id.set(principal_id)


def get_principal_id() -> str:
    return _principal_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def clear_context() -> None:
    _principal_id.set("-")
    _request_id.set("-")
