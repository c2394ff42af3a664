from sqlalchemy import JSON, BigInteger, Column, String

from rolegate.db.base import Base


class Document(Base):
    """Model for the documents table, one row per (collection, key)
    Example:
    {
        "collection": "users",
        "key": "123456789012345678",
        "data": {"wallet_address": "0xAbC...", "verified": true, "asset_count": 3},
        "updated_at": 1697123456
    }
    """

    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    key = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(BigInteger, nullable=False)
