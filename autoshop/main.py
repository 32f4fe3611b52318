from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from autoshop.api.v1 import branches, clients, debtors, events, orders, products, transactions
from autoshop.common.error_handlers import register_error_handlers
from autoshop.core.config import settings

app = FastAPI(title="Autoshop", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register API routers
app.include_router(branches.router, prefix="/api/v1/branches", tags=["branches"])
app.include_router(clients.router, prefix="/api/v1/clients", tags=["clients"])
app.include_router(products.router, prefix="/api/v1/products", tags=["products"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(debtors.router, prefix="/api/v1/debtors", tags=["debtors"])
app.include_router(
    transactions.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(events.router, tags=["events"])


@app.get("/")
def read_root():
    return {"message": "Welcome to the Autoshop APIs!"}
