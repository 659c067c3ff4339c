import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.errors import NotFound, PersistenceFailure
from app.models.product import Product

logger = logging.getLogger(__name__)


def resolve_product(session: Session, external_id: str) -> Product:
    """Map a provider product id (e.g. ``pdt_...``) to our Product."""
    try:
        product = session.exec(
            select(Product).where(Product.external_id == external_id)
        ).first()
    except SQLAlchemyError:
        logger.exception(f"Product lookup failed for {external_id}")
        raise PersistenceFailure()

    if not product:
        logger.error(f"Product not found for provider id: {external_id}")
        raise NotFound("Product not found")

    return product


def get_product(session: Session, product_id: int) -> Product:
    try:
        product = session.get(Product, product_id)
    except SQLAlchemyError:
        logger.exception(f"Product lookup failed for id {product_id}")
        raise PersistenceFailure()

    if not product:
        raise NotFound("Product not found")
    return product
