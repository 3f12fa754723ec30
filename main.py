import logging
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

import accounts
import admin_config
import catalog
import orders
import schemas
from auth import create_access_token, get_current_admin, get_current_user, get_optional_user
from config import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD, PORT, configure_logging
from database import SessionLocal, get_db, init_db, unit_of_work, utc_now
from errors import NotFound, StoreError
from models import Product, User
from notifications import Mailer

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------------------
# App Setup
# ----------------------------------------------------------------------------

app = FastAPI(title="EduJuegos Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid input", "errors": jsonable_encoder(exc.errors())})


def get_mailer(db: Session = Depends(get_db)) -> Optional[Mailer]:
    return Mailer.from_config(admin_config.get_config(db))


def auth_response(user: User) -> schemas.AuthResponse:
    return schemas.AuthResponse(user=schemas.User.model_validate(user), access_token=create_access_token(user.id))


# ----------------------------------------------------------------------------
# Models (request bodies)
# ----------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: str = Field(..., min_length=6)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class PasswordRecoveryRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    image_url: str
    type: Literal["physical", "digital"]
    age_range: str
    category: str
    stock: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    image_url: Optional[str] = None
    type: Optional[Literal["physical", "digital"]] = None
    age_range: Optional[str] = None
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class OrderLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1, le=orders.MAX_LINE_QUANTITY)


class CreateOrderRequest(BaseModel):
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)
    total: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    items: List[OrderLineRequest] = Field(..., min_length=1)


class StatusUpdateRequest(BaseModel):
    status: str


class AdminConfigRequest(BaseModel):
    smtp_email: Optional[EmailStr] = None
    smtp_password: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    mp_access_token: Optional[str] = None
    mp_public_key: Optional[str] = None


# ----------------------------------------------------------------------------
# Auth Endpoints
# ----------------------------------------------------------------------------

@app.post("/auth/register", response_model=schemas.AuthResponse, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = accounts.register_user(db, body.name, body.email, body.password)
    return auth_response(user)


@app.post("/auth/login", response_model=schemas.AuthResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    return auth_response(accounts.authenticate(db, body.email, body.password))


@app.post("/auth/logout")
def logout():
    # Tokens are stateless; the client just drops its copy.
    return {"message": "Logged out"}


@app.get("/auth/me", response_model=schemas.User)
def me(current: User = Depends(get_current_user)):
    return current


@app.put("/auth/profile", response_model=schemas.User)
def update_profile(body: ProfileUpdateRequest, current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return accounts.update_profile(db, current, body.name, body.email)


@app.put("/auth/change-password")
def change_password(body: ChangePasswordRequest, current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    accounts.change_password(db, current, body.current_password, body.new_password)
    return {"message": "Password updated"}


@app.post("/auth/password-recovery")
def password_recovery(body: PasswordRecoveryRequest, db: Session = Depends(get_db), mailer: Optional[Mailer] = Depends(get_mailer)):
    accounts.request_password_recovery(db, body.email, mailer)
    return {"message": "Recovery email sent", "email": body.email}


@app.post("/auth/reset-password")
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    accounts.reset_password(db, body.token, body.new_password)
    return {"message": "Password updated"}


# ----------------------------------------------------------------------------
# Product Endpoints
# ----------------------------------------------------------------------------

@app.get("/products", response_model=List[schemas.Product])
def list_products(db: Session = Depends(get_db)):
    return catalog.list_products(db)


@app.get("/products/{product_id}", response_model=schemas.Product)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/products", response_model=schemas.Product, status_code=201)
def create_product(body: ProductCreateRequest, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return catalog.create_product(db, body.model_dump())


@app.put("/products/{product_id}", response_model=schemas.Product)
def update_product(product_id: str, body: ProductUpdateRequest, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return catalog.update_product(db, product_id, body.model_dump(exclude_unset=True))


@app.delete("/products/{product_id}")
def delete_product(product_id: str, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"deleted": True}


# ----------------------------------------------------------------------------
# Orders (Checkout & Tracking)
# ----------------------------------------------------------------------------

@app.post("/orders", response_model=schemas.Order, status_code=201)
def create_order(body: CreateOrderRequest, current: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
    customer = body.model_dump(include={"customer_name", "customer_email", "customer_phone", "shipping_address"})
    lines = [(item.product_id, item.quantity) for item in body.items]
    return orders.create_order(db, customer, lines, body.total, user_id=current.id if current else None)


@app.get("/orders", response_model=List[schemas.Order])
def list_orders(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if current.is_admin:
        return orders.list_orders(db)
    return orders.list_user_orders(db, current.id)


@app.get("/orders/{order_id}", response_model=schemas.Order)
def get_order(order_id: str, current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not current.is_admin and order.user_id != current.id:
        raise NotFound("Order not found")
    return order


@app.put("/orders/{order_id}/status", response_model=schemas.Order)
def update_order_status(order_id: str, body: StatusUpdateRequest, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return orders.update_order_status(db, order_id, body.status)


# ----------------------------------------------------------------------------
# Admin: Store Configuration
# ----------------------------------------------------------------------------

@app.get("/admin/config")
def get_admin_config(admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    config = admin_config.get_config(db)
    if config is None:
        return {}
    return schemas.AdminConfig.model_validate(config)


@app.post("/admin/config", response_model=schemas.AdminConfig, status_code=201)
def save_admin_config(body: AdminConfigRequest, admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_config.save_config(db, body.model_dump(exclude_unset=True))


@app.get("/payments/config")
def payment_config(db: Session = Depends(get_db)):
    return admin_config.payment_settings(admin_config.get_config(db))


# ----------------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------------

@app.get("/")
def root():
    return {"message": "EduJuegos Store API running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    products_count = db.scalar(select(func.count()).select_from(Product).where(Product.is_active.is_(True)))
    return {
        "status": "healthy",
        "database": "connected",
        "products_count": products_count,
        "admin_exists": accounts.get_user_by_email(db, ADMIN_EMAIL) is not None,
        "timestamp": utc_now().isoformat() + "Z",
    }


# ----------------------------------------------------------------------------
# Seed Data (idempotent) and Startup Hook
# ----------------------------------------------------------------------------

SAMPLE_PRODUCTS = [
    {
        "name": "Kit Estimulación Cognitiva",
        "description": "Conjunto de juegos diseñados para estimular memoria, atención y concentración en niños pequeños.",
        "price": Decimal("18500"),
        "image_url": "https://images.unsplash.com/photo-1558618666-fcd25c85cd64?auto=format&fit=crop&w=800&h=400",
        "type": "physical",
        "age_range": "3-8",
        "category": "Estimulación Cognitiva",
        "stock": 12,
    },
    {
        "name": "Set Terapia Ocupacional",
        "description": "Herramientas especializadas para el desarrollo de habilidades motoras finas y coordinación.",
        "price": Decimal("35800"),
        "image_url": "https://images.unsplash.com/photo-1571019613454-1cb2f99b2d8b?auto=format&fit=crop&w=800&h=400",
        "type": "physical",
        "age_range": "4-12",
        "category": "Terapia Ocupacional",
        "stock": 8,
    },
    {
        "name": "Juego Mesa Habilidades Sociales",
        "description": "Dinámico juego para desarrollar empatía, comunicación y trabajo en equipo.",
        "price": Decimal("24300"),
        "image_url": "https://images.unsplash.com/photo-1606092195730-5d7b9af1efc5?auto=format&fit=crop&w=800&h=400",
        "type": "physical",
        "age_range": "7-15",
        "category": "Habilidades Sociales",
        "stock": 15,
    },
    {
        "name": "Actividades Lectoescritura Digital",
        "description": "Plataforma interactiva para el aprendizaje de lectura y escritura a través del juego.",
        "price": Decimal("12900"),
        "image_url": "https://images.unsplash.com/photo-1513475382585-d06e58bcb0e0?auto=format&fit=crop&w=800&h=400",
        "type": "digital",
        "age_range": "5-10",
        "category": "Lectoescritura",
        "stock": None,
    },
    {
        "name": "Programa Inteligencia Emocional",
        "description": "Curso digital completo para el desarrollo de habilidades emocionales y autoconocimiento.",
        "price": Decimal("15600"),
        "image_url": "https://images.unsplash.com/photo-1558618666-fcd25c85cd64?auto=format&fit=crop&w=800&h=400",
        "type": "digital",
        "age_range": "6-14",
        "category": "Inteligencia Emocional",
        "stock": None,
    },
    {
        "name": "App Matemáticas Adaptativa",
        "description": "Aplicación que se adapta al ritmo de aprendizaje para fortalecer habilidades matemáticas.",
        "price": Decimal("9800"),
        "image_url": "https://images.unsplash.com/photo-1509228627152-72ae9ae6848d?auto=format&fit=crop&w=800&h=400",
        "type": "digital",
        "age_range": "8-16",
        "category": "Matemáticas",
        "stock": None,
    },
]


def seed_data(db: Session):
    # Create admin if not exists
    if accounts.get_user_by_email(db, ADMIN_EMAIL) is None:
        accounts.register_user(db, ADMIN_NAME, ADMIN_EMAIL, ADMIN_PASSWORD, role="admin")

    # Seed products if table is empty
    if db.scalar(select(func.count()).select_from(Product)) == 0:
        with unit_of_work(db):
            db.add_all(Product(**p) for p in SAMPLE_PRODUCTS)
        logger.info("Seeded %d sample products", len(SAMPLE_PRODUCTS))


@app.post("/admin/seed")
def trigger_seed(admin: User = Depends(get_current_admin), db: Session = Depends(get_db)):
    seed_data(db)
    return {"seeded": True}


@app.on_event("startup")
def on_startup():
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        seed_data(db)
    except Exception:
        # Seeding is a convenience; the API still serves without it.
        logger.exception("Error seeding database")
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
