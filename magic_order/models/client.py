import uuid
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from database.connection import Base


def new_id() -> str:
    return str(uuid.uuid4())


# Modelo de cliente
class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, index=True)
    phone = Column(String(30), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Client(id='{self.id}', name='{self.name}')>"
