from autoshop.core.database import Base, SessionLocal, engine
from autoshop.core.exceptions import InsufficientStockError
from autoshop.models import Branch, Client, Currency, Debtor, DebtorPayment, Order, OrderItem, Product, Transaction, Balance
from autoshop.models.money import Money
from autoshop.models.order import OrderStatus, PaymentType
from autoshop.schemas.order import OrderCreate, OrderItemCreate
from autoshop.services.order_service import OrderService

from faker import Faker
import random
from datetime import date, timedelta
from decimal import Decimal

fake = Faker()
SEED_USER = "seed"

Base.metadata.create_all(bind=engine)
db = SessionLocal()

try:
    print("🔄 Clearing existing data...")
    for model in (DebtorPayment, Debtor, Transaction, Balance, OrderItem, Order, Product, Client, Branch):
        db.query(model).delete()
    db.commit()
    print("✅ Data cleared.")

    print("🔄 Creating branches and clients...")
    branches = [
        Branch(name=f"{fake.city()} service", address=fake.address().replace('\n', ', '), phone=f"998{random.randint(900000000, 999999999)}")
        for _ in range(3)
    ]
    db.add_all(branches)
    db.flush()

    clients = []
    for _ in range(random.randint(20, 30)):
        clients.append(Client(
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            phone=f"998{random.randint(900000000, 999999999)}",
            is_vip=random.random() < 0.2,
            branch_id=random.choice(branches).id,
            debt=Money.zero(),
        ))
    db.add_all(clients)
    db.commit()
    print(f"✅ Seeded {len(branches)} branches")
    print(f"✅ Seeded {len(clients)} clients")

    print("🔄 Creating products...")
    products = []
    for _ in range(25):
        cost = Decimal(random.randint(5, 200) * 1000)
        products.append(Product(
            name=fake.word().capitalize() + " oil",
            cost_price=cost,
            sale_price=cost * Decimal("1.3"),
            vip_price=cost * Decimal("1.2"),
            quantity=random.randint(20, 100),
            min_quantity=5,
            currency=Currency.UZS,
            branch_id=random.choice(branches).id,
            created_by=SEED_USER,
        ))
    db.add_all(products)
    db.commit()
    print(f"✅ Seeded {len(products)} products")

    print("🔄 Creating orders...")
    service = OrderService(db)
    created = 0
    for _ in range(40):
        client = random.choice(clients)
        picked = random.sample(products, random.randint(1, 3))
        items = [
            OrderItemCreate(product_id=p.id, quantity=random.randint(1, 3), price=p.sale_price)
            for p in picked
        ]
        total = sum((item.price * item.quantity for item in items), Decimal("0"))
        payment_type = random.choice(list(PaymentType))
        paid = total if payment_type != PaymentType.debt else (total / 2).quantize(Decimal("1"))
        order_data = OrderCreate(
            client_id=client.id,
            branch_id=random.choice(branches).id,
            products=items,
            total_amount={"uzs": total},
            paid_amount={"uzs": paid},
            debt_amount={"uzs": total - paid},
            payment_type=payment_type,
            status=random.choice([OrderStatus.completed, OrderStatus.completed, OrderStatus.pending]),
            date_returned=date.today() + timedelta(days=random.randint(7, 60)),
        )
        try:
            service.create(order_data, created_by=SEED_USER)
            created += 1
        except InsufficientStockError as e:
            print(f"⚠️ Skipped order: {e.message}")
    print(f"✅ Seeded {created} orders")

except Exception as e:
    db.rollback()
    print(f"❌ Seeding failed: {str(e)}")
    raise
finally:
    db.close()
