"""Pure formatters turning a task execution into channel payloads.

Success is classified the same way everywhere: a status code in [200, 400).
A missing status code (transport failure) is a failure.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.models.execution_log import ExecutionLog
from src.models.task import ApiTask

TRUNCATION_MARKER = "\n\n... (truncated)"
SLACK_MAX_BODY = 2000
DISCORD_MAX_FIELD = 1000
_FENCE_OPEN, _FENCE_CLOSE = "```\n", "\n```"
DISCORD_MAX_CODE = DISCORD_MAX_FIELD - len(_FENCE_OPEN) - len(_FENCE_CLOSE)
DISCORD_MAX_TITLE = 256

# Slack attachment colors / Discord embed colors
COLOR_SUCCESS = "#36a64f"
COLOR_FAILURE = "#ff0000"
DISCORD_COLOR_SUCCESS = 0x36A64F
DISCORD_COLOR_FAILURE = 0xFF0000

EMOJI_SUCCESS = "✅"
EMOJI_FAILURE = "❌"

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}


@dataclass
class EmailContent:
    subject: str
    html: str


def is_success(log: ExecutionLog) -> bool:
    return log.status_code is not None and 200 <= log.status_code < 400


def truncate(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Keep the first ``limit`` characters and append ``marker`` when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def escape_slack(text: str) -> str:
    """Escape the three characters Slack mrkdwn treats as control sequences."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _defuse_code_fence(text: str) -> str:
    # A literal ``` in user content would close our code block early
    return text.replace("```", "`\u200b``")


def _pretty_body(body: str) -> str:
    try:
        return json.dumps(json.loads(body), indent=2, ensure_ascii=False)
    except (ValueError, TypeError):
        return body


def _body_preview(body: str, limit: int) -> str:
    """Pretty-printed JSON when it fits in ``limit``, the raw body otherwise."""
    pretty = _pretty_body(body)
    return pretty if len(pretty) <= limit else body


def _status_text(log: ExecutionLog) -> str:
    return str(log.status_code) if log.status_code is not None else "N/A"


def _method(task: ApiTask) -> str:
    return getattr(task.method, "value", task.method)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> str:
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def _title(task: ApiTask, log: ExecutionLog) -> str:
    if is_success(log):
        return f"{EMOJI_SUCCESS} API Task Success: {task.task_name}"
    return f"{EMOJI_FAILURE} API Task Failed: {task.task_name}"


# -- Slack ---------------------------------------------------------------------


def format_slack(task: ApiTask, log: ExecutionLog, include_response: bool) -> Dict[str, Any]:
    """Slack incoming-webhook payload (attachment with Block Kit blocks)."""
    success = is_success(log)
    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": truncate(_title(task, log), 150, "..."),
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Task Name:*\n{escape_slack(task.task_name)}"},
                {"type": "mrkdwn", "text": f"*Status Code:*\n{_status_text(log)}"},
                {"type": "mrkdwn", "text": f"*Response Time:*\n{log.response_time_ms}ms"},
                {"type": "mrkdwn", "text": f"*Method:*\n{_method(task)}"},
            ],
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Endpoint:*\n`{escape_slack(task.api_url.replace('`', '%60'))}`",
            },
        },
    ]

    if log.error_message:
        error = _defuse_code_fence(escape_slack(log.error_message))
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:*\n```{error}```"},
            }
        )

    if include_response and log.response_body:
        body = truncate(_body_preview(log.response_body, SLACK_MAX_BODY), SLACK_MAX_BODY)
        body = _defuse_code_fence(escape_slack(body))
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Response Body:*\n```{body}```"},
            }
        )

    executed_at = _as_utc(log.executed_at)
    epoch = int(executed_at.timestamp())
    blocks.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": (
                        f"Executed at: <!date^{epoch}^{{date_short_pretty}} at {{time}}"
                        f"|{_iso(executed_at)}>"
                    ),
                }
            ],
        }
    )

    return {
        "attachments": [
            {
                "color": COLOR_SUCCESS if success else COLOR_FAILURE,
                "blocks": blocks,
            }
        ]
    }


# -- Discord -------------------------------------------------------------------


def _discord_value(text: str, limit: int = DISCORD_MAX_FIELD) -> str:
    """Fit a field value into ``limit`` characters, marker included."""
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def _discord_code_block(text: str) -> str:
    # Fences count towards the field limit
    inner = _discord_value(_defuse_code_fence(text), DISCORD_MAX_CODE)
    return f"{_FENCE_OPEN}{inner}{_FENCE_CLOSE}"


def format_discord(task: ApiTask, log: ExecutionLog, include_response: bool) -> Dict[str, Any]:
    """Discord webhook payload with a single embed. Mentions are disabled."""
    success = is_success(log)
    fields = [
        {"name": "Task Name", "value": _discord_value(task.task_name), "inline": True},
        {"name": "Status Code", "value": _status_text(log), "inline": True},
        {"name": "Response Time", "value": f"{log.response_time_ms}ms", "inline": True},
        {"name": "Method", "value": _method(task), "inline": True},
        {
            "name": "Endpoint",
            "value": _discord_value(f"`{task.api_url.replace('`', '%60')}`"),
            "inline": False,
        },
    ]

    if log.error_message:
        fields.append(
            {"name": "Error", "value": _discord_code_block(log.error_message), "inline": False}
        )

    if include_response and log.response_body:
        fields.append(
            {
                "name": "Response Body",
                "value": _discord_code_block(
                    _body_preview(log.response_body, DISCORD_MAX_CODE)
                ),
                "inline": False,
            }
        )

    embed = {
        "title": truncate(_title(task, log), DISCORD_MAX_TITLE - 3, "..."),
        "color": DISCORD_COLOR_SUCCESS if success else DISCORD_COLOR_FAILURE,
        "fields": fields,
        "footer": {"text": f"Executed at {_as_utc(log.executed_at):%Y-%m-%d %H:%M:%S} UTC"},
        "timestamp": _iso(log.executed_at),
    }
    return {"embeds": [embed], "allowed_mentions": {"parse": []}}


# -- Generic webhook -----------------------------------------------------------


def format_webhook(task: ApiTask, log: ExecutionLog, include_response: bool) -> Dict[str, Any]:
    """Flat JSON event for user-supplied webhooks. Nothing is truncated."""
    payload: Dict[str, Any] = {
        "event": "task.executed",
        "task_id": task.id,
        "task_name": task.task_name,
        "api_url": task.api_url,
        "method": _method(task),
        "status_code": log.status_code,
        "success": is_success(log),
        "response_time_ms": log.response_time_ms,
        "error_message": log.error_message,
        "executed_at": _iso(log.executed_at),
    }
    if include_response:
        payload["response_body"] = log.response_body
    return payload


# -- Email ---------------------------------------------------------------------

_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: {header_color}; color: #ffffff; padding: 24px; text-align: center; border-radius: 8px 8px 0 0;">
    <h1 style="margin: 0; font-size: 22px;">{heading}</h1>
  </div>
  <div style="padding: 24px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 8px 8px;">
    <div style="display: inline-block; padding: 6px 14px; border-radius: 16px; font-weight: 600; background: {badge_bg}; color: {badge_fg};">{badge}</div>
    <h2>{task_name}</h2>
{error_section}    <table style="width: 100%; border-collapse: collapse;">
      <tr><td style="padding: 6px 0; color: #6b7280;">Status Code:</td><td>{status_code}</td></tr>
      <tr><td style="padding: 6px 0; color: #6b7280;">Response Time:</td><td>{response_time}ms</td></tr>
      <tr><td style="padding: 6px 0; color: #6b7280;">Method:</td><td>{method}</td></tr>
      <tr><td style="padding: 6px 0; color: #6b7280;">Executed At:</td><td>{executed_at}</td></tr>
    </table>
    <p><strong>Endpoint:</strong></p>
    <div style="background: #f3f4f6; padding: 10px; border-radius: 4px; font-family: monospace; word-break: break-all;">{api_url}</div>
{response_section}  </div>
  <p style="text-align: center; font-size: 12px; color: #9ca3af;">
    This is an automated notification from API Pulse. You're receiving this because you have notifications enabled for this task.
  </p>
</body>
</html>
"""

_EMAIL_ERROR_SECTION = """    <div style="background: #fef2f2; border-left: 4px solid #ef4444; padding: 12px; margin-bottom: 16px;">
      <strong>Error Message:</strong><br>
      {error}
    </div>
"""

_EMAIL_RESPONSE_SECTION = """    <p><strong>Response Body:</strong></p>
    <pre style="background: #1f2937; color: #f9fafb; padding: 12px; border-radius: 4px; overflow-x: auto; white-space: pre-wrap;">{body}</pre>
"""


def format_email(task: ApiTask, log: ExecutionLog, include_response: bool) -> EmailContent:
    """Subject and HTML body. Every user-controlled value is HTML-escaped."""
    success = is_success(log)
    error_section = ""
    if log.error_message:
        error_section = _EMAIL_ERROR_SECTION.format(error=escape_html(log.error_message))
    response_section = ""
    if include_response and log.response_body:
        response_section = _EMAIL_RESPONSE_SECTION.format(body=escape_html(log.response_body))

    html = _EMAIL_TEMPLATE.format(
        title="API Task Success" if success else "API Task Failed",
        heading=f"{EMOJI_SUCCESS} API Task Success" if success else f"{EMOJI_FAILURE} API Task Failed",
        header_color="#10b981" if success else "#ef4444",
        badge="Successfully Executed" if success else "Execution Failed",
        badge_bg="#d1fae5" if success else "#fee2e2",
        badge_fg="#065f46" if success else "#991b1b",
        task_name=escape_html(task.task_name),
        error_section=error_section,
        status_code=_status_text(log),
        response_time=log.response_time_ms,
        method=escape_html(_method(task)),
        executed_at=f"{_as_utc(log.executed_at):%b %d, %Y %H:%M} UTC",
        api_url=escape_html(task.api_url),
        response_section=response_section,
    )
    return EmailContent(subject=_title(task, log), html=html)
