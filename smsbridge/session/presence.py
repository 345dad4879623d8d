from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from smsbridge.host.adapter import Host
    from smsbridge.session.registry import SessionRegistry


logger = logging.getLogger(__name__)

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


def discover_status(*, host: "Host", observer: str, subject: str) -> bool:
    """Report `subject`'s status to `observer` if `subject` is its buddy."""
    if not host.find_buddy(account=observer, who=subject):
        return False
    status_id, message = host.active_status(account=subject)
    if status_id != STATUS_ONLINE:
        logger.error("%s's buddy %s has an unknown status: %s, %s", observer, subject, status_id, message)
        return False
    logger.info("%s sees that %s is %s: %s", observer, subject, status_id, message)
    host.got_user_status(account=observer, who=subject, status_id=status_id, message=message)
    return True


def announce_login(*, host: "Host", registry: "SessionRegistry", username: str) -> None:
    for other in registry.usernames():
        discover_status(host=host, observer=username, subject=other)
    for other in registry.usernames():
        logger.info("notifying %s that %s changed status", other, username)
        discover_status(host=host, observer=other, subject=username)


def announce_logout(*, host: "Host", registry: "SessionRegistry", username: str) -> None:
    for other in registry.usernames():
        if other == username or not host.find_buddy(account=other, who=username):
            continue
        logger.info("notifying %s that %s went offline", other, username)
        host.got_user_status(account=other, who=username, status_id=STATUS_OFFLINE, message=None)
