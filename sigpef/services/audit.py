"""Audit trail writes and the address recorded with them."""

import logging
from dataclasses import dataclass
from datetime import date
from threading import Lock
from typing import Iterable

import httpx
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.core import config
from sigpef.models.message import LogEntry

logger = logging.getLogger(__name__)

UNKNOWN_IP = 'Não identificado'


class PublicIpCache:
    """Looks the public address up once per process and keeps it."""

    def __init__(self, lookup_url: str = config.PUBLIC_IP_LOOKUP_URL, transport: httpx.BaseTransport | None = None):
        self._lookup_url = lookup_url
        self._transport = transport
        self._lock = Lock()
        self._value: str | None = None

    def get(self) -> str:
        if self._value is not None:
            return self._value

        with self._lock:
            if self._value is not None:
                return self._value
            if not self._lookup_url:
                return UNKNOWN_IP
            try:
                with httpx.Client(transport=self._transport, timeout=5.0) as client:
                    response = client.get(self._lookup_url)
                    response.raise_for_status()
                    payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning('Public IP lookup failed: %s', exc)
                return UNKNOWN_IP
            ip = payload.get('ip') if isinstance(payload, dict) else None
            if not ip or not isinstance(ip, str):
                return UNKNOWN_IP
            self._value = ip
            return ip

    def reset(self) -> None:
        with self._lock:
            self._value = None


public_ip_cache = PublicIpCache()


def client_ip(request: Request | None) -> str:
    if request is not None:
        forwarded = request.headers.get('x-forwarded-for', '')
        first_hop = forwarded.split(',')[0].strip()
        if first_hop:
            return first_hop
        if request.client and request.client.host:
            return request.client.host
    return public_ip_cache.get()


def request_ip(request: Request) -> str:
    return client_ip(request)


def log_system_action(
    db: Session,
    user_email: str,
    action: str,
    details: str,
    ip_address: str | None = None,
) -> LogEntry | None:
    """Append an audit entry. A failed write is logged and never raised."""
    entry = LogEntry(user_email=user_email, action=action, details=details, ip_address=ip_address)
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Failed to record audit entry %s for %s', action, user_email)
        return None
    return entry


@dataclass(frozen=True)
class LogFilters:
    search: str = ''
    action: str = ''
    on_date: date | None = None


def filter_logs(entries: Iterable[LogEntry], filters: LogFilters) -> list[LogEntry]:
    needle = filters.search.strip().lower()
    selected = []
    for entry in entries:
        if needle:
            text_match = (
                needle in (entry.user_email or '').lower()
                or needle in (entry.details or '').lower()
                or (entry.ip_address is not None and needle in entry.ip_address)
            )
            if not text_match:
                continue
        if filters.action and filters.action not in (entry.action or ''):
            continue
        if filters.on_date and (entry.created_at is None or entry.created_at.date() != filters.on_date):
            continue
        selected.append(entry)
    return selected


def unique_actions(entries: Iterable[LogEntry]) -> list[str]:
    return sorted({entry.action for entry in entries if entry.action})
