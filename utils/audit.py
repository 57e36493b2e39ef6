import json
import logging

logger = logging.getLogger("booking.audit")


def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None, level=logging.INFO):
    logger.log(
        level,
        "%s user=%s entity=%s entity_id=%s metadata=%s",
        action,
        user_id,
        entity,
        str(entity_id) if entity_id is not None else None,
        json.dumps(metadata, default=str, sort_keys=True) if metadata else None,
    )
