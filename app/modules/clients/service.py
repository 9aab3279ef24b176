"""
Servicio de clientes: CRUD con número de cliente único.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import DuplicateKeyError, NotFoundError, ValidationError
from app.modules.clients.models import Client
from app.modules.clients.schemas import ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)


class ClientService:
    def __init__(self, db: Session):
        self.db = db

    def _ensure_unique_number(self, client_number: str, exclude_id: Optional[UUID] = None):
        query = self.db.query(Client).filter(Client.client_number == client_number)
        if exclude_id is not None:
            query = query.filter(Client.id != exclude_id)
        if query.first():
            raise DuplicateKeyError("client_number", "Client number already exists")

    def _commit(self, client: Client) -> Client:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # PostgreSQL reports the constraint name, SQLite the column
            if "uq_clients_client_number" in str(e) or "client_number" in str(e):
                raise DuplicateKeyError("client_number", "Client number already exists")
            raise
        self.db.refresh(client)
        return client

    def list_clients(self, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Client]:
        query = self.db.query(Client)
        if search:
            search_term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Client.name.ilike(search_term),
                    Client.client_number.ilike(search_term),
                    Client.mf.ilike(search_term),
                )
            )
        return query.order_by(Client.name.asc()).offset(offset).limit(limit).all()

    def get_client(self, client_id: UUID) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id).first()
        if not client:
            raise NotFoundError("Client not found")
        return client

    def create_client(self, client_data: ClientCreate) -> Client:
        self._ensure_unique_number(client_data.client_number)
        client = Client(**client_data.model_dump())
        self.db.add(client)
        client = self._commit(client)
        logger.info(f"Client {client.client_number} created")
        return client

    def update_client(self, client_id: UUID, client_update: ClientUpdate) -> Client:
        changes = client_update.model_dump(exclude_unset=True)
        # name and number are required columns
        for required in ("name", "client_number"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be empty")
        if not changes:
            raise ValidationError("No valid fields to update")

        client = self.get_client(client_id)
        if "client_number" in changes:
            self._ensure_unique_number(changes["client_number"], exclude_id=client.id)

        for field, value in changes.items():
            setattr(client, field, value)
        return self._commit(client)

    def delete_client(self, client_id: UUID) -> None:
        """Borrado físico; las facturas conservan su copia de los datos."""
        client = self.get_client(client_id)
        client_number = client.client_number
        self.db.delete(client)
        self.db.commit()
        logger.info(f"Client {client_number} deleted")
