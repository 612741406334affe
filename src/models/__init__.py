from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask, HttpMethod
from src.models.task_notification import NotifyOn, TaskNotification
from src.models.user_usage import UserUsage

__all__ = [
    "ApiTask",
    "ExecutionLog",
    "HttpMethod",
    "Integration",
    "IntegrationType",
    "NotifyOn",
    "TaskNotification",
    "UserUsage",
]
