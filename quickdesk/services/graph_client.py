"""Microsoft Graph mail client (client-credentials flow).

Each Graph call is made once; failures surface as ExternalServiceError
with the upstream message and status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from quickdesk.core.config import settings
from quickdesk.core.errors import ExternalServiceError
from quickdesk.services.http_service import ensure_success
from quickdesk.utils.datetimes import isoformat_z

logger = logging.getLogger(__name__)

SERVICE = "Microsoft Graph"
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
INBOX_PAGE_SIZE = 30
MAX_INBOX_PAGES = 20
MESSAGE_FIELDS = (
    "id,conversationId,subject,from,bodyPreview,body,receivedDateTime,"
    "toRecipients,ccRecipients,hasAttachments"
)
ATTACHMENT_EXPAND = "attachments($select=id,name,contentType,size,isInline)"


@dataclass(frozen=True)
class GraphConfig:
    tenant_id: str
    client_id: str
    client_secret: str
    mailbox: str


def config_for_org(org) -> GraphConfig | None:
    """Org mail settings, falling back to GRAPH_* settings. None if incomplete."""
    tenant_id = org.graph_tenant_id or settings.GRAPH_TENANT_ID
    client_id = org.graph_client_id or settings.GRAPH_CLIENT_ID
    client_secret = org.graph_client_secret or settings.GRAPH_CLIENT_SECRET
    mailbox = org.graph_mailbox or settings.GRAPH_MAILBOX
    if not (tenant_id and client_id and client_secret and mailbox):
        return None
    return GraphConfig(tenant_id, client_id, client_secret, mailbox)


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.GRAPH_TIMEOUT_SECONDS)


def _recipients(addresses: list[str] | None) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": a}} for a in addresses or []]


async def _send(method: str, url: str, token: str | None = None, **kwargs) -> httpx.Response:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    async with _client() as client:
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise ExternalServiceError(SERVICE, str(exc)) from exc
    return ensure_success(response, SERVICE)


async def get_access_token(config: GraphConfig) -> str:
    response = await _send(
        "POST",
        TOKEN_URL.format(tenant_id=config.tenant_id),
        data={
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        },
    )
    token = response.json().get("access_token")
    if not token:
        raise ExternalServiceError(SERVICE, "Token response did not include an access token")
    return token


async def list_inbox_messages(
    config: GraphConfig, since: datetime | None, top: int = INBOX_PAGE_SIZE
) -> list[dict[str, Any]]:
    """
    Inbox messages received after ``since``, oldest first.

    With a ``since`` cursor every page is followed (``@odata.nextLink``)
    up to MAX_INBOX_PAGES, in ascending order so a truncated read resumes
    where it stopped. Without one only the newest page is read, so a
    first sync does not replay the whole mailbox.
    """
    token = await get_access_token(config)
    params = {
        "$top": str(top),
        "$select": MESSAGE_FIELDS,
        "$expand": ATTACHMENT_EXPAND,
    }
    if since is None:
        params["$orderby"] = "receivedDateTime desc"
    else:
        params["$orderby"] = "receivedDateTime asc"
        params["$filter"] = f"receivedDateTime gt {isoformat_z(since)}"

    url: str | None = f"{GRAPH_BASE_URL}/users/{config.mailbox}/mailFolders/inbox/messages"
    messages: list[dict[str, Any]] = []
    pages = 0
    while url:
        response = await _send("GET", url, token, params=params)
        payload = response.json()
        messages.extend(payload.get("value", []))
        pages += 1
        url = payload.get("@odata.nextLink") if since is not None else None
        # nextLink already carries the query string
        params = None
        if url and pages >= MAX_INBOX_PAGES:
            logger.warning(
                "Inbox read for %s stopped after %d pages; the rest is read next sync",
                config.mailbox,
                pages,
            )
            break

    messages.sort(key=lambda m: m.get("receivedDateTime") or "")
    return messages


async def list_conversation_messages(config: GraphConfig, conversation_id: str) -> list[dict[str, Any]]:
    """Every message of one conversation across folders, oldest first."""
    token = await get_access_token(config)
    escaped = conversation_id.replace("'", "''")
    params: dict[str, str] | None = {
        "$filter": f"conversationId eq '{escaped}'",
        "$select": MESSAGE_FIELDS,
        "$expand": ATTACHMENT_EXPAND,
    }
    url: str | None = f"{GRAPH_BASE_URL}/users/{config.mailbox}/messages"
    messages: list[dict[str, Any]] = []
    while url:
        response = await _send("GET", url, token, params=params)
        payload = response.json()
        messages.extend(payload.get("value", []))
        url = payload.get("@odata.nextLink")
        params = None
    # Graph rejects $orderby combined with this filter
    messages.sort(key=lambda m: m.get("receivedDateTime") or "")
    return messages


async def send_mail(
    config: GraphConfig,
    *,
    recipient: str,
    subject: str,
    body_html: str,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
) -> None:
    """Send one message from the configured mailbox."""
    token = await get_access_token(config)
    message = {
        "subject": subject,
        "body": {"contentType": "HTML", "content": body_html},
        "toRecipients": _recipients([recipient]),
    }
    if cc:
        message["ccRecipients"] = _recipients(cc)
    if bcc:
        message["bccRecipients"] = _recipients(bcc)

    await _send(
        "POST",
        f"{GRAPH_BASE_URL}/users/{config.mailbox}/sendMail",
        token,
        json={"message": message, "saveToSentItems": True},
    )


async def reply(
    config: GraphConfig,
    message_id: str,
    *,
    body_html: str,
    to: list[str] | None = None,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
) -> None:
    """Reply in-thread to ``message_id``; recipients override Graph's defaults."""
    token = await get_access_token(config)
    message: dict[str, Any] = {"body": {"contentType": "HTML", "content": body_html}}
    if to:
        message["toRecipients"] = _recipients(to)
    if cc:
        message["ccRecipients"] = _recipients(cc)
    if bcc:
        message["bccRecipients"] = _recipients(bcc)

    await _send(
        "POST",
        f"{GRAPH_BASE_URL}/users/{config.mailbox}/messages/{message_id}/reply",
        token,
        json={"message": message},
    )


async def forward(
    config: GraphConfig,
    message_id: str,
    *,
    to: list[str],
    comment_html: str = "",
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
) -> None:
    token = await get_access_token(config)
    payload: dict[str, Any] = {"comment": comment_html, "toRecipients": _recipients(to)}
    if cc:
        payload["ccRecipients"] = _recipients(cc)
    if bcc:
        payload["bccRecipients"] = _recipients(bcc)

    await _send(
        "POST",
        f"{GRAPH_BASE_URL}/users/{config.mailbox}/messages/{message_id}/forward",
        token,
        json=payload,
    )
