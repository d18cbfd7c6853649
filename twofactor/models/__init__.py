from twofactor.models.user import User
from twofactor.models.two_factor import TwoFactorAuth
from twofactor.models.login_log import LoginLog
from twofactor.models.event_log import EventLog

__all__ = ["User", "TwoFactorAuth", "LoginLog", "EventLog"]
