"""Quick search over the clients and appointments already loaded in memory."""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable

from .entities import Appointment, Client

DEFAULT_LIMIT = 10
WALK_IN_LABEL = "Walk-in"

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class SearchResult:
    id: int
    type: str
    title: str
    subtitle: str
    href: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "subtitle": self.subtitle,
            "href": self.href,
        }


def normalize(text: str | None) -> str:
    """Lower-case and strip accents, so "José" and "jose" compare equal."""
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def digits(text: str | None) -> str:
    return _NON_DIGITS.sub("", text or "")


def format_money(amount) -> str:
    return f"{float(amount):.2f}"


def _client_matches(client: Client, query: str, query_digits: str) -> bool:
    if query in normalize(client.name):
        return True
    # Only a query with digits in it can match a phone number.
    return bool(query_digits) and query_digits in digits(client.phone)


def search(
    query: str,
    clients: Iterable[Client],
    appointments: Iterable[Appointment],
    limit: int = DEFAULT_LIMIT,
) -> list[SearchResult]:
    """Clients first, then appointments, capped at ``limit`` overall."""
    needle = normalize(query).strip()
    if not needle:
        return []
    needle_digits = digits(query)

    clients = list(clients)
    names = {client.id: client.name for client in clients}
    results: list[SearchResult] = []

    for client in clients:
        if _client_matches(client, needle, needle_digits):
            results.append(SearchResult(
                id=client.id,
                type="client",
                title=client.name,
                subtitle=f"{client.phone} • {client.total_visits} visits • {format_money(client.total_spent)}",
                href=f"/clients?id={client.id}",
            ))

    for appointment in appointments:
        client_name = names.get(appointment.client_id) or WALK_IN_LABEL
        if (
            needle in normalize(client_name)
            or needle in normalize(appointment.service_type)
            or needle in normalize(appointment.status.value)
        ):
            results.append(SearchResult(
                id=appointment.id,
                type="appointment",
                title=f"{client_name} - {appointment.service_type}",
                subtitle=(
                    f"{appointment.scheduled_date:%Y-%m-%d %H:%M} • "
                    f"{appointment.status.value} • {format_money(appointment.price)}"
                ),
                href=f"/appointments?id={appointment.id}",
            ))

    return results[:limit]
