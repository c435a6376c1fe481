import logging

MAX_DETAIL_LEN = 2000

audit_logger = logging.getLogger("repairdesk.audit")


def _trim(detail: str) -> str:
    if len(detail) > MAX_DETAIL_LEN:
        return detail[:MAX_DETAIL_LEN] + "...(truncated)"
    return detail


def log_action(action: str, detail: str, actor: str = "system") -> None:
    audit_logger.info(_trim(detail), extra={"action": action, "actor": actor})
