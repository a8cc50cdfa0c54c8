"""
Admin Module - System Settings
================================
Read helpers for runtime-editable key/value settings.
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from modules.admin.models import SystemSetting


def get_setting_from_db(db: Session, key: str, default: str = "") -> str:
    """Fetch a system setting using an existing DB session."""
    setting = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    return setting.value if setting else default


def parse_decimal_setting(db: Session, key: str, default: Decimal) -> Decimal:
    """Fetch a system setting and parse it as Decimal."""
    val = get_setting_from_db(db, key, str(default))
    try:
        return Decimal(str(val).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default


def set_setting(db: Session, key: str, value: str, description: str = None) -> SystemSetting:
    setting = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if setting:
        setting.value = value
    else:
        setting = SystemSetting(key=key, value=value, description=description)
        db.add(setting)
    db.flush()
    return setting
