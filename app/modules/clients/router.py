from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.config import settings
from app.common.schemas import MessageResponse
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import client_manager_dependency
from app.modules.clients.schemas import ClientCreate, ClientUpdate, ClientOut
from app.modules.clients.service import ClientService

clients_router = APIRouter()


@clients_router.get("/", response_model=List[ClientOut])
def list_clients(
    db: db_dependency,
    current_user: client_manager_dependency,
    search: Optional[str] = Query(None, description="Search by name, client number or MF"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    return ClientService(db).list_clients(search=search, limit=limit, offset=offset)


@clients_router.post("/", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(client_data: ClientCreate, db: db_dependency, current_user: client_manager_dependency):
    return ClientService(db).create_client(client_data)


@clients_router.get("/{client_id}", response_model=ClientOut)
def get_client(client_id: UUID, db: db_dependency, current_user: client_manager_dependency):
    return ClientService(db).get_client(client_id)


@clients_router.put("/{client_id}", response_model=ClientOut)
def update_client(
    client_id: UUID,
    client_update: ClientUpdate,
    db: db_dependency,
    current_user: client_manager_dependency,
):
    return ClientService(db).update_client(client_id, client_update)


@clients_router.delete("/{client_id}", response_model=MessageResponse)
def delete_client(client_id: UUID, db: db_dependency, current_user: client_manager_dependency):
    ClientService(db).delete_client(client_id)
    return MessageResponse(message="Client deleted successfully")
