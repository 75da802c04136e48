"""Order and client-request data access helpers."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from starlette.concurrency import run_in_threadpool

from persistence.models import ClientRequest, Order


class DuplicateRequestError(Exception):
    """Raised when a client request id has already been recorded."""


@runtime_checkable
class OrderRepository(Protocol):
    """Persistence boundary used by the command handlers."""

    async def get(self, order_number: int) -> Optional[Order]: ...

    def add(self, order: Order) -> Order: ...

    async def save(self) -> bool: ...


@runtime_checkable
class RequestManager(Protocol):
    """Tracks command request ids for the idempotency layer."""

    async def find(self, request_id: str) -> Optional[ClientRequest]: ...

    async def create_request_for_command(self, request_id: str, command_name: str) -> ClientRequest: ...

    async def complete(self, request_id: str, succeeded: bool) -> None: ...


class SqlAlchemyOrderRepository:
    """Thin repository that encapsulates order persistence operations.

    The session is synchronous; blocking calls run in Starlette's threadpool so
    the event loop keeps serving other requests while the database works.
    """

    def __init__(self, db: Session):
        self._db = db

    async def get(self, order_number: int) -> Optional[Order]:
        return await run_in_threadpool(self._load, order_number)

    def add(self, order: Order) -> Order:
        self._db.add(order)
        return order

    async def save(self) -> bool:
        await run_in_threadpool(self._commit)
        return True

    def _load(self, order_number: int) -> Optional[Order]:
        return self._db.get(Order, order_number, options=[selectinload(Order.order_items)])

    def _commit(self) -> None:
        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise


class SqlAlchemyRequestManager:
    def __init__(self, db: Session):
        self._db = db

    async def find(self, request_id: str) -> Optional[ClientRequest]:
        return await run_in_threadpool(self._db.get, ClientRequest, request_id)

    async def create_request_for_command(self, request_id: str, command_name: str) -> ClientRequest:
        return await run_in_threadpool(self._create, request_id, command_name)

    async def complete(self, request_id: str, succeeded: bool) -> None:
        await run_in_threadpool(self._complete, request_id, succeeded)

    def _create(self, request_id: str, command_name: str) -> ClientRequest:
        if self._db.get(ClientRequest, request_id) is not None:
            raise DuplicateRequestError(f"Request with {request_id} already exists")

        record = ClientRequest(id=request_id, name=command_name)
        self._db.add(record)
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise DuplicateRequestError(f"Request with {request_id} already exists") from exc
        return record

    def _complete(self, request_id: str, succeeded: bool) -> None:
        record = self._db.get(ClientRequest, request_id)
        if record is None:
            return
        record.succeeded = succeeded
        self._db.commit()
