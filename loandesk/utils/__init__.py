from loandesk.utils.login_security import enforce_login_limits, check_lockout, register_login_attempt

__all__ = [
    "enforce_login_limits",
    "check_lockout",
    "register_login_attempt",
]
