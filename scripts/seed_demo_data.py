"""
Seed script: populate a development database with demo data.

What it creates:
- Demo administrator (settings DEMO_USERNAME / DEMO_PASSWORD, "demo" / "demo123" by default).
- Sample clients with Tunisian-style client numbers and MF.
- Sample invoices numbered through the regular allocator (BCC001, BCC002, ...).

Run from the project root:
    python scripts/seed_demo_data.py --clients 5 --invoices 20

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from decimal import Decimal

from app.core.config import settings
from app.database.database import Database
from app.modules.auth.service import AuthService
from app.modules.clients.models import Client
from app.modules.clients.schemas import ClientCreate
from app.modules.clients.service import ClientService
from app.modules.invoices.schemas import InvoiceCreate, InvoiceItemIn
from app.modules.invoices.service import InvoiceService

CLIENT_NAMES = [
    "Epicerie Ben Salah", "Superette El Amal", "Boulangerie Zitouna",
    "Restaurant Le Golfe", "Cafe Dar Bizerte", "Magasin Nour",
    "Hotel Utique Palace", "Pizzeria Carthage",
]

PRODUCTS = [
    ("Ricotta", Decimal("14.500")),
    ("Fromage frais", Decimal("18.000")),
    ("Mozzarella", Decimal("22.750")),
    ("Gouda", Decimal("31.200")),
    ("Beurre", Decimal("26.000")),
    ("Lben", Decimal("2.300")),
]


def create_clients(db, count: int):
    service = ClientService(db)
    clients = []
    for index in range(count):
        number = f"CL{index + 1:04d}"
        existing = db.query(Client).filter(Client.client_number == number).first()
        if existing:
            clients.append(existing)
            continue
        clients.append(service.create_client(ClientCreate(
            name=CLIENT_NAMES[index % len(CLIENT_NAMES)],
            client_number=number,
            address=random.choice(["Bizerte", "Utique", "Menzel Bourguiba", "Ras Jebel", None]),
            mf=f"{random.randint(1000000, 9999999)}/{random.choice('ABCDEFGH')}",
        )))
    return clients


def create_invoices(db, clients, count: int):
    service = InvoiceService(db)
    created = []
    for _ in range(count):
        items = []
        for designation, unit_price in random.sample(PRODUCTS, k=random.randint(1, 4)):
            quantity = Decimal(random.randint(1, 40)) / Decimal(2)
            items.append(InvoiceItemIn(designation=designation, quantity=quantity, unit_price=unit_price))
        invoice = service.create_invoice(InvoiceCreate(
            client_id=random.choice(clients).id,
            items=items,
            total_discount=Decimal(random.choice([0, 0, 0, 1, 5])),
        ))
        created.append(invoice)
        if len(created) % 10 == 0:
            print(f"  Invoices created: {len(created)}")
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed invoicing demo data")
    parser.add_argument("--clients", type=int, default=5)
    parser.add_argument("--invoices", type=int, default=20)
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    if args.clients < 1:
        parser.error("--clients must be at least 1")
    random.seed(args.seed)

    database = Database.from_settings(settings)
    database.create_all()
    db = database.session()
    try:
        user = AuthService(db).ensure_demo_user()

        print("Creating clients...")
        clients = create_clients(db, args.clients)
        print(f"Clients: {len(clients)}")

        print("Creating invoices...")
        invoices = create_invoices(db, clients, args.invoices)
        print(f"Invoices created: {len(invoices)}")

        print("\nSeed completed.")
        print("Login credentials:")
        print(f"  Username: {user.username}")
        print(f"  Password: {settings.DEMO_PASSWORD}")
        if invoices:
            print(f"Invoice numbers: {invoices[0].invoice_number} .. {invoices[-1].invoice_number}")
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    main()
