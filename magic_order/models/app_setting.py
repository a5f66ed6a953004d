from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from database.connection import Base


# Ajustes persistentes de la aplicación (prompt personalizado, proveedor de IA...)
class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<AppSetting(key='{self.key}')>"
