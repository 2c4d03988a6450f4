"""tools/notify.py

Build notifications: console, email, Slack and Microsoft Teams.

Channels are independent: one that is not configured or fails to deliver
logs a warning and the others still go out. Notifications never fail a
build.

Transport:
- email via ``smtplib`` (``SMTP_HOST`` / ``SMTP_PORT`` / ``SMTP_USER`` /
  ``SMTP_PASSWORD`` / ``SMTP_STARTTLS`` / ``SMTP_FROM``)
- Slack via an incoming webhook (``webhookUrl`` or ``SLACK_WEBHOOK_URL``)
- Teams via a connector webhook (``webhookUrl`` or ``TEAMS_WEBHOOK_URL``)
"""

from __future__ import annotations

import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, List, Mapping, Optional

import requests

from java_ci.domain.build import BuildInfo

from .core_git import get_commit_author_email, is_git_repo
from .workspace import FAILURE, SUCCESS, UNSTABLE, Workspace

SLACK_COLORS = {SUCCESS: "good", FAILURE: "danger", UNSTABLE: "warning"}
TEAMS_COLORS = {SUCCESS: "00FF00", FAILURE: "FF0000", UNSTABLE: "FFA500"}

_LABELS = {SUCCESS: "Success", FAILURE: "Failure", UNSTABLE: "Unstable build"}

HTTP_TIMEOUT_SECONDS = 10

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


def console_message(status: str, info: BuildInfo) -> str:
    if status == SUCCESS:
        return f"[SUCCESS] Build #{info.build_number} completed successfully for {info.app_name} v{info.version}"
    if status == FAILURE:
        error = f" with error: {info.error}" if info.error else ""
        return f"[FAILURE] Build #{info.build_number} failed for {info.app_name}{error}"
    return f"[UNSTABLE] Build #{info.build_number} is unstable for {info.app_name} v{info.version}"


def slack_message(status: str, info: BuildInfo, *, back_to_normal: bool = False) -> str:
    if status == SUCCESS and back_to_normal:
        message = f"✅ Build #{info.build_number} for {info.app_name} v{info.version} is back to normal!"
    elif status == SUCCESS:
        message = f"✅ Build #{info.build_number} for {info.app_name} v{info.version} completed successfully!"
    elif status == FAILURE:
        message = f"❌ Build #{info.build_number} for {info.app_name} failed!"
        if info.error:
            message += f"\nError: {info.error}"
    else:
        message = f"⚠️ Build #{info.build_number} for {info.app_name} v{info.version} is unstable"

    if info.build_url:
        message += f"\n<{info.build_url}|View Build>"
    return message


def email_subject(status: str, info: BuildInfo) -> str:
    return f"[{status}] {info.app_name} v{info.version} - Build #{info.build_number}"


def email_body(status: str, info: BuildInfo) -> str:
    body = (
        f"<h2>Build {status} - {info.app_name} v{info.version}</h2>\n"
        f"<p><strong>Build Number:</strong> #{info.build_number}</p>\n"
        f"<p><strong>Status:</strong> {status}</p>\n"
        f"<p><strong>Commit:</strong> {info.commit or 'N/A'}</p>\n"
        f"<p><strong>Branch:</strong> {info.branch or 'N/A'}</p>\n"
    )
    if status == FAILURE and info.error:
        body += f"<p><strong>Error:</strong> {info.error}</p>\n"
    if info.build_url:
        body += f"<p><a href='{info.build_url}'>View Build</a></p>\n"
    return body


def teams_payload(status: str, info: BuildInfo, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    facts = [
        {"name": "Project", "value": info.app_name},
        {"name": "Version", "value": info.version or "N/A"},
        {"name": "Build Number", "value": f"#{info.build_number}"},
        {"name": "Status", "value": status},
        {"name": "Branch", "value": info.branch or "N/A"},
        {"name": "Commit", "value": (info.commit or "")[:8] or "N/A"},
    ]
    if status == FAILURE and info.error:
        facts.append({"name": "Error", "value": info.error})

    section: Dict[str, Any] = {
        "activityTitle": f"{info.app_name} Build {status}",
        "activitySubtitle": f"Build #{info.build_number} - {(now or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')}",
        "facts": facts,
        "markdown": True,
    }
    if info.build_url:
        section["potentialAction"] = [
            {
                "@type": "OpenUri",
                "name": "View Build",
                "targets": [{"os": "default", "uri": info.build_url}],
            }
        ]

    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "themeColor": TEAMS_COLORS[status],
        "summary": f"{info.app_name} Build {status}",
        "sections": [section],
    }


def _split_recipients(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.replace(";", ",").split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def _env_bool(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


class Notifier:
    def __init__(self, workspace: Workspace) -> None:
        self.ws = workspace

    def send_success(self, config: Mapping[str, Any], build_info: BuildInfo) -> Dict[str, str]:
        return self._send(SUCCESS, config, build_info)

    def send_failure(self, config: Mapping[str, Any], build_info: BuildInfo) -> Dict[str, str]:
        return self._send(FAILURE, config, build_info)

    def send_unstable(self, config: Mapping[str, Any], build_info: BuildInfo) -> Dict[str, str]:
        return self._send(UNSTABLE, config, build_info)

    def _send(self, status: str, config: Mapping[str, Any], info: BuildInfo) -> Dict[str, str]:
        """Deliver *status* on every configured channel; returns channel -> outcome."""
        label = _LABELS[status]
        if config.get("enabled") is False:
            self.ws.echo(f"{label} notifications are disabled")
            return {}

        self.ws.echo(f"Sending {label.lower()} notifications...")
        outcomes: Dict[str, str] = {}
        for channel in config.get("channels") or ["console"]:
            name = str(channel).lower()
            try:
                if name == "email":
                    outcomes[name] = self.send_email(config.get("email") or {}, info, status)
                elif name == "slack":
                    outcomes[name] = self.send_slack(config.get("slack") or {}, info, status)
                elif name == "teams":
                    outcomes[name] = self.send_teams(config.get("teams") or {}, info, status)
                else:
                    self.ws.echo(console_message(status, info))
                    outcomes[name] = SENT
            except (requests.RequestException, smtplib.SMTPException, OSError) as e:
                self.ws.warn(f"Failed to send {channel} notification: {e}")
                outcomes[name] = FAILED
        return outcomes

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def send_email(self, config: Mapping[str, Any], info: BuildInfo, status: str) -> str:
        recipients = _split_recipients(config.get("recipients"))
        if config.get("sendToIndividuals") and is_git_repo(self.ws):
            author = get_commit_author_email(self.ws)
            if author and author not in recipients:
                recipients.append(author)
        if not recipients:
            self.ws.echo("Email recipients not configured")
            return SKIPPED

        env = self.ws.env
        host = config.get("smtpHost") or env.get("SMTP_HOST")
        if not host:
            self.ws.warn("Email notifications enabled but SMTP_HOST is not set")
            return SKIPPED
        raw_port = config.get("smtpPort") or env.get("SMTP_PORT") or 25
        try:
            port = int(raw_port)
        except (TypeError, ValueError):
            self.ws.warn(f"Invalid SMTP port '{raw_port}', skipping email notification")
            return SKIPPED

        msg = EmailMessage()
        msg["Subject"] = email_subject(status, info)
        msg["From"] = config.get("from") or env.get("SMTP_FROM") or "ci@localhost"
        msg["To"] = ", ".join(recipients)
        msg.set_content(console_message(status, info))
        msg.add_alternative(email_body(status, info), subtype="html")

        if self.ws.dry_run:
            self.ws.echo(f"(dry-run) would email {msg['To']}: {msg['Subject']}")
            return SKIPPED

        username = env.get("SMTP_USER")
        password = env.get("SMTP_PASSWORD")
        with smtplib.SMTP(host, port, timeout=HTTP_TIMEOUT_SECONDS) as client:
            if _env_bool(env.get("SMTP_STARTTLS")):
                client.starttls()
            if username and password:
                client.login(username, password)
            client.send_message(msg)
        self.ws.echo(f"Email sent to {msg['To']}")
        return SENT

    def send_slack(self, config: Mapping[str, Any], info: BuildInfo, status: str) -> str:
        channel = config.get("channel")
        if not channel:
            self.ws.echo("Slack channel not configured")
            return SKIPPED

        back_to_normal = status == SUCCESS and info.previous_result in (FAILURE, UNSTABLE)
        if status == SUCCESS and config.get("notifySuccess") is False:
            if not (back_to_normal and config.get("notifyBackToNormal", True)):
                self.ws.echo("Slack success notifications are disabled")
                return SKIPPED
        if status == FAILURE and config.get("notifyFailure") is False:
            self.ws.echo("Slack failure notifications are disabled")
            return SKIPPED

        webhook = config.get("webhookUrl") or self.ws.env.get("SLACK_WEBHOOK_URL")
        if not webhook:
            self.ws.warn("Slack webhook not configured (webhookUrl / SLACK_WEBHOOK_URL)")
            return SKIPPED

        payload = {
            "channel": channel,
            "attachments": [
                {
                    "color": SLACK_COLORS[status],
                    "text": slack_message(
                        status, info, back_to_normal=back_to_normal and bool(config.get("notifyBackToNormal", True))
                    ),
                }
            ],
        }
        if self.ws.dry_run:
            self.ws.echo(f"(dry-run) would post to Slack {channel}")
            return SKIPPED

        resp = requests.post(webhook, json=payload, timeout=HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return SENT

    def send_teams(self, config: Mapping[str, Any], info: BuildInfo, status: str) -> str:
        webhook = config.get("webhookUrl") or self.ws.env.get("TEAMS_WEBHOOK_URL")
        if not webhook:
            self.ws.echo("Teams webhook URL not configured")
            return SKIPPED

        payload = teams_payload(status, info)
        if self.ws.dry_run:
            self.ws.echo("(dry-run) would post to Teams")
            return SKIPPED

        resp = requests.post(webhook, json=payload, timeout=HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return SENT
