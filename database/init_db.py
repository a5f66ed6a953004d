import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))) #Agregar ruta del proyecto

from decimal import Decimal

from database.connection import Base, engine, SessionLocal
from magic_order.models import Client, Product, ProductVariant  # registra todos los modelos en Base


def init_database(bind=engine):
    """Crear todas las tablas en la base de datos"""
    Base.metadata.create_all(bind=bind)
    print("✅ Base de datos inicializada correctamente")


def populate_catalog(db=None):
    """Poblar la base de datos con un catálogo y clientes de ejemplo"""
    own_session = db is None
    if own_session:
        db = SessionLocal()

    try:
        # Verificar si ya hay productos
        if db.query(Product).count() > 0:
            print("⚠️  Ya hay productos en la base de datos")
            return

        products_data = [
            {"name": "Leche", "price": Decimal("1.20"), "description": "Leche entera 1L", "variants": []},
            {"name": "Pan", "price": Decimal("1.50"), "description": "Pan de molde", "variants": []},
            {"name": "Queso fresco", "price": Decimal("6.80"), "description": "Queso fresco por kilo", "variants": []},
            {
                "name": "Pañales",
                "price": Decimal("12.00"),
                "description": "Paquete de pañales",
                "variants": [("Talla 1", "11.50"), ("Talla 2", "12.00"), ("Talla 3", "12.50")],
            },
            {
                "name": "Yogur",
                "price": Decimal("0.90"),
                "description": "Yogur individual",
                "variants": [("Fresa", "0.90"), ("Natural", "0.85")],
            },
        ]
        for data in products_data:
            product = Product(name=data["name"], price=data["price"], description=data["description"])
            product.variants = [ProductVariant(name=name, price=Decimal(price)) for name, price in data["variants"]]
            db.add(product)

        for name, phone in [("Ana", None), ("María López", "+34 600 111 222"), ("Juan Pérez", None)]:
            db.add(Client(name=name, phone=phone))

        db.commit()
        print(f"✅ {len(products_data)} productos y 3 clientes agregados a la base de datos")
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    init_database()
    populate_catalog()
