"""Client repository implementation.

Read access for booking validation plus creation, with display names
normalized before storage.
"""

from typing import Optional

from spa_booking.db.base import Client as DbClient
from spa_booking.domain.entities import Client as DomainClient
from spa_booking.domain.interfaces import IClientReader
from spa_booking.utils.name_utils import normalize_display_name


def client_to_domain(db_client: DbClient) -> DomainClient:
    return DomainClient(
        id=db_client.id,
        name=db_client.name,
        phone=db_client.phone,
        email=db_client.email,
    )


class ClientRepository(IClientReader):
    """Repository for Client persistence operations."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def get_by_id(self, client_id: int) -> Optional[DomainClient]:
        db_client = self.db.query(DbClient).filter_by(id=client_id).first()
        return client_to_domain(db_client) if db_client else None

    def create(self, client: DomainClient) -> DomainClient:
        db_client = DbClient(
            name=normalize_display_name(client.name),
            phone=client.phone,
            email=client.email or None,
        )
        self.db.add(db_client)
        self.db.commit()
        self.db.refresh(db_client)
        return client_to_domain(db_client)
