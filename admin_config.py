"""
Store-wide settings (mail relay, payment gateway keys).

The admin_config table holds a single row with id 1. It is absent until the
first save and updated in place afterwards; concurrent saves are last writer
wins.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from database import unit_of_work
from errors import ValidationError
from models import AdminConfig

logger = logging.getLogger(__name__)

SINGLETON_ID = 1

FIELDS = ("smtp_email", "smtp_password", "smtp_host", "smtp_port", "mp_access_token", "mp_public_key")


def get_config(db: Session) -> Optional[AdminConfig]:
    return db.get(AdminConfig, SINGLETON_ID)


def save_config(db: Session, changes: Dict[str, Any]) -> AdminConfig:
    """Apply ``changes`` to the settings row, creating it on first save."""
    unknown = set(changes) - set(FIELDS)
    if unknown:
        raise ValidationError(f"Unknown config fields: {sorted(unknown)}")
    with unit_of_work(db):
        config = get_config(db)
        if config is None:
            config = AdminConfig(id=SINGLETON_ID)
            db.add(config)
        for field, value in changes.items():
            setattr(config, field, value)
    db.refresh(config)
    logger.info("Admin config saved (%s)", ", ".join(sorted(changes)) or "no fields")
    return config


def payment_settings(config: Optional[AdminConfig]) -> Dict[str, Any]:
    """What the checkout page may know about the payment gateway."""
    public_key = config.mp_public_key if config else None
    return {
        "public_key": public_key,
        "configured": bool(config and config.mp_access_token and config.mp_public_key),
    }
