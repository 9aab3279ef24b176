from sqlalchemy import Column, String, Uuid, UniqueConstraint
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TimestampMixin


class Client(Base, TimestampMixin):
    """Cliente de la fromagerie. Las facturas guardan una copia de sus datos."""
    __tablename__ = "clients"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    client_number = Column(String(100), nullable=False)
    address = Column(String(500), nullable=True)
    mf = Column(String(100), nullable=True)  # matricule fiscal

    __table_args__ = (
        UniqueConstraint("client_number", name="uq_clients_client_number"),
    )
