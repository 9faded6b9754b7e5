"""Built-in workflow actions.

Each action only defines its contract with the outside world (``MailTransport``,
``MetaStore``, an HTTP session); the concrete plumbing is injected so the actions
can be exercised without a mail server or a network.
"""

from __future__ import annotations

import json
import logging
import re
import smtplib
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Literal, Protocol
from urllib.parse import urlparse

import requests

from flowline.config import FlowlineSettings
from flowline.workflow.actions import Action, ActionRegistry, ActionResult
from flowline.workflow.conditions import to_text

logger = logging.getLogger(__name__)

EntityKind = Literal["post", "user"]

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)+$"
)
_META_KEY_RE = re.compile(r"[^a-z0-9_\-]")
_TAG_RE = re.compile(r"<[^>]*>")

WEBHOOK_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
DEFAULT_WEBHOOK_EVENT = "flowline_event"


def interpolate(template: str, payload: Mapping[str, Any]) -> str:
    """Replace ``{{path.to.field}}`` placeholders with payload values.

    A placeholder whose path does not fully resolve is left as-is.
    """

    def _replace(match: re.Match[str]) -> str:
        value: Any = payload
        for key in match.group(1).split("."):
            if isinstance(value, Mapping) and key in value:
                value = value[key]
            else:
                return match.group(0)
        if value is None or isinstance(value, (Mapping, list, tuple)):
            return json.dumps(value, ensure_ascii=False, default=str)
        return to_text(value)

    return _PLACEHOLDER_RE.sub(_replace, template)


def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value)) and len(value) <= 254


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return 0
    return 0


def sanitize_key(value: Any) -> str:
    return _META_KEY_RE.sub("", to_text(value).lower())


def sanitize_text(value: Any) -> str:
    return " ".join(_TAG_RE.sub("", to_text(value)).split())


# --- Collaborator contracts -------------------------------------------------


class MailTransport(Protocol):
    def send(self, to: str, subject: str, body: str, headers: Mapping[str, str]) -> bool: ...


class MetaStore(Protocol):
    def exists(self, kind: EntityKind, entity_id: int) -> bool: ...

    def update_meta(self, kind: EntityKind, entity_id: int, key: str, value: str) -> None: ...


@dataclass
class SmtpMailTransport:
    """Deliver mail through an SMTP relay. Returns False instead of raising."""

    host: str
    port: int = 25
    username: str = ""
    password: str = ""
    from_addr: str = "flowline@localhost"
    use_tls: bool = False

    @classmethod
    def from_settings(cls, settings: FlowlineSettings) -> SmtpMailTransport:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_addr=settings.smtp_from_addr,
            use_tls=settings.smtp_use_tls,
        )

    def send(self, to: str, subject: str, body: str, headers: Mapping[str, str]) -> bool:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        for name, value in headers.items():
            if name.lower() != "content-type":
                msg[name] = value
        msg.set_content(body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery failed", extra={"to": to, "error": str(e)})
            return False


class JsonMetaStore:
    """Post and user meta persisted to a single JSON file.

    Layout: ``{"post": {"42": {"key": "value"}}, "user": {...}}``. An entity exists
    once it has been registered, even without any meta.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, dict[str, dict[str, str]]]:
        if not self.path.exists():
            return {"post": {}, "user": {}}
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            return {"post": {}, "user": {}}
        raw.setdefault("post", {})
        raw.setdefault("user", {})
        return raw

    def _save_unlocked(self, data: dict[str, dict[str, dict[str, str]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def register(self, kind: EntityKind, entity_id: int) -> None:
        with self._lock:
            data = self._load_unlocked()
            data[kind].setdefault(str(entity_id), {})
            self._save_unlocked(data)

    def exists(self, kind: EntityKind, entity_id: int) -> bool:
        with self._lock:
            return str(entity_id) in self._load_unlocked()[kind]

    def get_meta(self, kind: EntityKind, entity_id: int) -> dict[str, str]:
        with self._lock:
            return dict(self._load_unlocked()[kind].get(str(entity_id), {}))

    def update_meta(self, kind: EntityKind, entity_id: int, key: str, value: str) -> None:
        with self._lock:
            data = self._load_unlocked()
            entity = data[kind].get(str(entity_id))
            if entity is None:
                raise KeyError(f"{kind} {entity_id}")
            entity[key] = value
            self._save_unlocked(data)


# --- Actions ----------------------------------------------------------------


class SendEmailAction:
    slug = "send_email"
    label = "Send Email"
    group = "Communication"

    def __init__(self, transport: MailTransport) -> None:
        self._transport = transport

    def config_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["to", "subject", "body"],
            "properties": {
                "to": {
                    "type": "string",
                    "description": "Recipient email. Supports {{payload.field}} placeholders.",
                },
                "subject": {"type": "string", "description": "Email subject line."},
                "body": {"type": "string", "description": "Email body (HTML supported)."},
            },
        }

    def execute(self, config: Mapping[str, Any], payload: Mapping[str, Any]) -> ActionResult:
        to = interpolate(to_text(config.get("to", "")), payload).strip()
        subject = interpolate(to_text(config.get("subject", "")), payload)
        body = interpolate(to_text(config.get("body", "")), payload)

        if not is_email(to):
            return ActionResult.failure(f"Invalid email address: {to}")

        sent = self._transport.send(
            to, subject, body, {"Content-Type": "text/html; charset=UTF-8"}
        )
        if not sent:
            return ActionResult.failure("Mail transport reported a delivery failure.")

        return ActionResult.ok(f"Email sent to {to}.")


class SendWebhookAction:
    slug = "send_webhook"
    label = "Send Webhook"
    group = "Integration"

    def __init__(
        self,
        settings_provider: Callable[[], FlowlineSettings],
        session: requests.Session | None = None,
    ) -> None:
        self._settings_provider = settings_provider
        self._session = session or requests.Session()

    def config_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["url"],
            "properties": {
                "url": {"type": "string", "format": "uri"},
                "method": {"type": "string", "enum": list(WEBHOOK_METHODS), "default": "POST"},
                "headers": {"type": "object", "additionalProperties": {"type": "string"}},
                "event_name": {"type": "string", "default": DEFAULT_WEBHOOK_EVENT},
            },
        }

    def execute(self, config: Mapping[str, Any], payload: Mapping[str, Any]) -> ActionResult:
        url = to_text(config.get("url", "")).strip()
        if not url:
            return ActionResult.failure("Webhook URL is empty.")
        if urlparse(url).scheme not in {"http", "https"}:
            return ActionResult.failure(f"Webhook URL must use http or https: {url}")

        method = to_text(config.get("method", "POST")).upper()
        if method not in WEBHOOK_METHODS:
            method = "POST"

        headers = {"Content-Type": "application/json"}
        extra_headers = config.get("headers")
        if isinstance(extra_headers, Mapping):
            headers.update({str(k): to_text(v) for k, v in extra_headers.items()})

        body = json.dumps(
            {"event": config.get("event_name") or DEFAULT_WEBHOOK_EVENT, "payload": payload},
            ensure_ascii=False,
            default=str,
        )
        timeout = self._settings_provider().effective_webhook_timeout

        try:
            resp = self._session.request(
                method, url, data=body.encode("utf-8"), headers=headers, timeout=timeout
            )
        except requests.RequestException as e:
            return ActionResult.failure(f"Webhook failed: {e}", {"error": str(e)})

        data = {"response_code": resp.status_code, "response_body": resp.text}
        if 200 <= resp.status_code < 300:
            return ActionResult.ok(f"Webhook sent. Status: {resp.status_code}", data)
        return ActionResult.failure(f"Webhook returned status {resp.status_code}.", data)


class _UpdateMetaAction:
    """Shared logic for writing a meta value onto a post or user."""

    slug: str
    label: str
    group = "Data"
    kind: EntityKind

    def __init__(self, store: MetaStore) -> None:
        self._store = store

    @property
    def id_field(self) -> str:
        return f"{self.kind}_id"

    def config_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["meta_key", "meta_value"],
            "properties": {
                self.id_field: {
                    "type": "integer",
                    "description": f"Target {self.kind} ID. Falls back to payload.{self.id_field}.",
                },
                "meta_key": {"type": "string"},
                "meta_value": {"type": "string"},
            },
        }

    def execute(self, config: Mapping[str, Any], payload: Mapping[str, Any]) -> ActionResult:
        raw_id = config.get(self.id_field)
        if raw_id is None:
            raw_id = payload.get(self.id_field, 0)
        entity_id = _to_int(raw_id)
        meta_key = sanitize_key(config.get("meta_key", ""))
        value = sanitize_text(config.get("meta_value", ""))

        if entity_id <= 0:
            return ActionResult.failure(f"Invalid {self.kind} ID.")
        if meta_key == "":
            return ActionResult.failure("Meta key is required.")
        if not self._store.exists(self.kind, entity_id):
            return ActionResult.failure(f"{self.kind.capitalize()} {entity_id} not found.")

        self._store.update_meta(self.kind, entity_id, meta_key, value)
        return ActionResult.ok(
            f'{self.kind.capitalize()} meta "{meta_key}" updated on {self.kind} {entity_id}.',
            {self.id_field: entity_id, "meta_key": meta_key},
        )


class UpdatePostMetaAction(_UpdateMetaAction):
    slug = "update_post_meta"
    label = "Update Post Meta"
    kind: EntityKind = "post"


class UpdateUserMetaAction(_UpdateMetaAction):
    slug = "update_user_meta"
    label = "Update User Meta"
    kind: EntityKind = "user"


def default_action_registry(
    settings_provider: Callable[[], FlowlineSettings],
    *,
    mail: MailTransport,
    meta: MetaStore,
    session: requests.Session | None = None,
    extra: Iterable[Action] = (),
) -> ActionRegistry:
    """Build a registry with the built-in actions followed by ``extra``.

    ``extra`` is the extension point for third-party actions; an extra action with
    a built-in slug replaces the built-in.
    """

    registry = ActionRegistry(
        [
            SendEmailAction(mail),
            SendWebhookAction(settings_provider, session=session),
            UpdatePostMetaAction(meta),
            UpdateUserMetaAction(meta),
        ]
    )
    for action in extra:
        registry.add(action)
    return registry
