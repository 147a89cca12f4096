"""
Test suite for ProductRepository.

Runs the repository against a mocked AsyncSession and inspects the SQL it
issues, so the conditional stock updates are checked for the guards in their
WHERE clauses, the None-on-no-row contract and rollback on database errors.
"""

import re
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.database.models.product import Product
from marketplace.services.catalog.repository import (
    ProductRepository,
    ProductRepositoryError,
)
from marketplace.services.orders.exceptions import RepositoryError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_session() -> AsyncMock:
    """
    Create mock async database session.

    Returns:
        AsyncMock: Mocked AsyncSession with common methods
    """
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def product_repository(mock_session: AsyncMock) -> ProductRepository:
    """ProductRepository over the mocked session."""
    return ProductRepository(session=mock_session)


@pytest.fixture
def sample_product() -> Product:
    """Active product with stock."""
    return Product(
        id=uuid.uuid4(),
        product_id="P00001",
        name="Desk Lamp",
        price=Decimal("24.99"),
        quantity=12,
        category_id="CAT01",
        vendor_id="VEN00001",
        image_urls=[],
        is_deleted=False,
    )


def returning(mock_session: AsyncMock, value) -> None:
    """Make the next execute() yield ``value`` from scalar_one_or_none()."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    mock_session.execute.return_value = result


def issued_sql(mock_session: AsyncMock):
    """Compile the statement passed to the last execute() call."""
    stmt = mock_session.execute.call_args.args[0]
    compiled = stmt.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


def where_clause(sql: str) -> str:
    return re.split(r"\sWHERE ", sql, maxsplit=1)[1].split(" RETURNING ", 1)[0]


# ============================================================================
# Lookups
# ============================================================================


@pytest.mark.asyncio
async def test_find_by_code_success(product_repository, mock_session, sample_product):
    """Active products are found by their custom code."""
    returning(mock_session, sample_product)

    result = await product_repository.find_by_code("P00001")

    assert result is sample_product
    sql, params = issued_sql(mock_session)
    assert "products.product_id = " in where_clause(sql)
    assert "products.is_deleted IS" in where_clause(sql)
    assert "P00001" in params.values()


@pytest.mark.asyncio
async def test_find_by_code_not_found(product_repository, mock_session):
    """Unknown codes return None."""
    returning(mock_session, None)

    assert await product_repository.find_by_code("P00404") is None


@pytest.mark.asyncio
async def test_find_by_code_including_deleted(product_repository, mock_session):
    """Soft-deleted products are visible when asked for."""
    returning(mock_session, None)

    await product_repository.find_by_code("P00001", include_deleted=True)

    sql, _ = issued_sql(mock_session)
    assert "is_deleted" not in where_clause(sql)


@pytest.mark.asyncio
async def test_find_by_code_database_error(product_repository, mock_session):
    """Query failures surface as ProductRepositoryError."""
    mock_session.execute.side_effect = SQLAlchemyError("Connection lost")

    with pytest.raises(ProductRepositoryError, match="Failed to fetch product") as exc_info:
        await product_repository.find_by_code("P00001")

    assert isinstance(exc_info.value, RepositoryError)
    assert exc_info.value.context["product_id"] == "P00001"
    assert "Connection lost" in exc_info.value.context["error"]


@pytest.mark.asyncio
async def test_find_all_by_codes_empty_skips_query(product_repository, mock_session):
    """An empty code list never reaches the database."""
    assert await product_repository.find_all_by_codes([]) == {}
    mock_session.execute.assert_not_called()


@pytest.mark.asyncio
async def test_find_all_by_codes_maps_by_code(product_repository, mock_session, sample_product):
    """Products come back keyed by their code."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = [sample_product]
    mock_session.execute.return_value = result

    products = await product_repository.find_all_by_codes(["P00001", "P00001"])

    assert products == {"P00001": sample_product}


@pytest.mark.asyncio
async def test_find_low_stock_is_inclusive(product_repository, mock_session):
    """The low-stock query uses an inclusive ceiling over active products."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = []
    mock_session.execute.return_value = result

    await product_repository.find_low_stock(10)

    sql, params = issued_sql(mock_session)
    assert "products.quantity <= " in where_clause(sql)
    assert "products.is_deleted IS" in where_clause(sql)
    assert "ORDER BY products.quantity ASC" in sql
    assert 10 in params.values()


@pytest.mark.asyncio
async def test_exists_by_code_database_error(product_repository, mock_session):
    """Code checks map database failures to ProductRepositoryError."""
    mock_session.scalar.side_effect = SQLAlchemyError("timeout")

    with pytest.raises(ProductRepositoryError, match="Failed to check product code"):
        await product_repository.exists_by_code("P00001")


# ============================================================================
# Conditional stock updates
# ============================================================================


@pytest.mark.asyncio
async def test_decrement_if_available_success(product_repository, mock_session):
    """A covered deduction returns the remaining quantity and commits."""
    returning(mock_session, 9)

    remaining = await product_repository.decrement_if_available("P00001", 3)

    assert remaining == 9
    mock_session.commit.assert_awaited_once()
    sql, params = issued_sql(mock_session)
    assert sql.startswith("UPDATE products SET ")
    assert "quantity=(products.quantity - " in sql
    assert "products.quantity >= " in where_clause(sql)
    assert "products.is_deleted IS" in where_clause(sql)
    assert "RETURNING products.quantity" in sql
    assert 3 in params.values()


@pytest.mark.asyncio
async def test_decrement_if_available_no_row(product_repository, mock_session):
    """When the guard matches no row the deduction reports None."""
    returning(mock_session, None)

    assert await product_repository.decrement_if_available("P00001", 50) is None
    mock_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_decrement_if_available_rolls_back_on_error(product_repository, mock_session):
    """Database failures roll back and raise ProductRepositoryError."""
    mock_session.execute.side_effect = SQLAlchemyError("deadlock detected")

    with pytest.raises(ProductRepositoryError, match="Stock update failed") as exc_info:
        await product_repository.decrement_if_available("P00001", 3)

    mock_session.rollback.assert_awaited_once()
    mock_session.commit.assert_not_awaited()
    assert exc_info.value.context["action"] == "decrement"


@pytest.mark.asyncio
async def test_reconcile_quantity_guards_on_headroom(product_repository, mock_session):
    """Reconciliation requires stock plus the previous quantity to cover the new one."""
    returning(mock_session, 0)

    remaining = await product_repository.reconcile_quantity("P00001", 5, 8)

    assert remaining == 0
    sql, params = issued_sql(mock_session)
    where = where_clause(sql)
    assert "products.quantity + " in where
    assert ">= " in where
    assert "products.is_deleted IS" in where
    assert {5, 8} <= set(params.values())


@pytest.mark.asyncio
async def test_reconcile_quantity_no_row(product_repository, mock_session):
    """Insufficient headroom reports None."""
    returning(mock_session, None)

    assert await product_repository.reconcile_quantity("P00001", 5, 9) is None


@pytest.mark.asyncio
async def test_restore_quantity_ignores_soft_delete(product_repository, mock_session):
    """Restoring stock applies to soft-deleted products too."""
    returning(mock_session, 7)

    assert await product_repository.restore_quantity("P00001", 4) == 7

    sql, _ = issued_sql(mock_session)
    assert "is_deleted" not in where_clause(sql)
    assert "quantity=(products.quantity + " in sql


@pytest.mark.asyncio
async def test_set_quantity_rolls_back_on_error(product_repository, mock_session):
    """Stock overrides map database failures to ProductRepositoryError."""
    mock_session.execute.side_effect = SQLAlchemyError("lock timeout")

    with pytest.raises(ProductRepositoryError):
        await product_repository.set_quantity("P00001", 40)

    mock_session.rollback.assert_awaited_once()


# ============================================================================
# Writes
# ============================================================================


@pytest.mark.asyncio
async def test_insert_commits(product_repository, mock_session, sample_product):
    """New products are added and committed."""
    result = await product_repository.insert(sample_product)

    assert result is sample_product
    mock_session.add.assert_called_once_with(sample_product)
    mock_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_insert_integrity_error(product_repository, mock_session, sample_product):
    """Code collisions roll back and raise ProductRepositoryError."""
    mock_session.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(ProductRepositoryError, match="data integrity violation"):
        await product_repository.insert(sample_product)

    mock_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_set_deleted_scoped_to_vendor(product_repository, mock_session):
    """The soft-delete flag only changes on the owning vendor's product."""
    returning(mock_session, uuid.uuid4())

    assert await product_repository.set_deleted("P00001", "VEN00001", True) is True

    sql, params = issued_sql(mock_session)
    assert "products.vendor_id = " in where_clause(sql)
    assert "VEN00001" in params.values()
    mock_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_set_deleted_other_vendor(product_repository, mock_session):
    """No matching row means nothing was updated."""
    returning(mock_session, None)

    assert await product_repository.set_deleted("P00001", "VEN00002", True) is False
