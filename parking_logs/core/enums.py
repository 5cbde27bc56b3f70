from enum import Enum


class LogLevel(str, Enum):
    error = "error"
    warn = "warn"
    info = "info"
    debug = "debug"


class LogAction(str, Enum):
    login = "login"
    logout = "logout"
    register = "register"
    create_reservation = "create_reservation"
    cancel_reservation = "cancel_reservation"
    finish_reservation = "finish_reservation"
    update_user = "update_user"
    delete_user = "delete_user"
    role_change = "role_change"
    create_plaza = "create_plaza"
    update_plaza = "update_plaza"
    delete_plaza = "delete_plaza"
    parking_occupation = "parking_occupation"
    access_logs = "access_logs"
    system_error = "system_error"


# composite filter value, not a stored action
RESERVATION_ACTIONS_FILTER = "reservation_actions"

RESERVATION_ACTIONS = (
    LogAction.create_reservation,
    LogAction.cancel_reservation,
    LogAction.finish_reservation,
)


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"
    excel = "excel"


class AlertLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class HealthStatus(str, Enum):
    healthy = "healthy"
    warning = "warning"
    critical = "critical"


class UserRole(str, Enum):
    admin = "admin"
    user = "user"
