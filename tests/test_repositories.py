"""
Tests for the query error translation in `repositories/client.py`.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from repositories.client import QueryError, execute, run_query
from repositories.order_repository import DuplicateOrderNumberError, OrderRepository


class StubQuery:
    def __init__(self, response=None, error=None) -> None:
        self.response = response
        self.error = error

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    def execute(self):
        if self.error is not None:
            raise self.error
        return self.response


class StubClient:
    def __init__(self, query: StubQuery) -> None:
        self.query = query

    def table(self, name):
        return self.query


def test_execute_returns_rows() -> None:
    query = StubQuery(response=SimpleNamespace(data=[{"id": "order-1"}], error=None))

    assert execute(query, "fetch order") == [{"id": "order-1"}]


def test_api_error_becomes_query_error() -> None:
    query = StubQuery(error=APIError({"message": "connection reset", "code": "08006"}))

    with pytest.raises(QueryError, match="Failed to fetch order: connection reset") as excinfo:
        execute(query, "fetch order")

    assert excinfo.value.code == "08006"
    assert isinstance(excinfo.value, RuntimeError)


def test_error_on_response_becomes_query_error() -> None:
    query = StubQuery(response=SimpleNamespace(data=None, error="permission denied", count=None))

    with pytest.raises(QueryError, match="permission denied"):
        run_query(query, "count leads")


def test_unique_violation_is_duplicate_order_number() -> None:
    error = APIError({"message": "duplicate key value", "code": "23505"})
    repository = OrderRepository(StubClient(StubQuery(error=error)))

    with pytest.raises(DuplicateOrderNumberError):
        repository.insert_order({"order_number": "ORD-12345678"})


def test_delete_failure_is_runtime_error() -> None:
    error = APIError({"message": "connection reset", "code": "08006"})
    repository = OrderRepository(StubClient(StubQuery(error=error)))

    with pytest.raises(RuntimeError, match="delete order"):
        repository.delete_order("order-1")
