"""fieldvault meta information."""
__title__ = "fieldvault"
__description__ = (
    "Transparent field-level encryption for SQLAlchemy models."
)
__version__ = "0.1.0"
