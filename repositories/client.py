"""
Supabase client initialization.

This module contains *only* the database connection setup and the query
error translation shared by the repositories. The client is
created on first use (not at import) so the domain and service layers can be
imported and tested without credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from postgrest.exceptions import APIError  # type: ignore[import-not-found]

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Load environment variables from the .env file in the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _require_env(name: str, hint: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing environment variable: {name}. {hint}")
    return value


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Return the process-wide Supabase client, creating it on first call.

    Raises:
        RuntimeError: if SUPABASE_URL or SUPABASE_KEY is not set.
    """

    url = _require_env("SUPABASE_URL", "Set SUPABASE_URL to your Supabase project URL.")
    key = _require_env("SUPABASE_KEY", "Set SUPABASE_KEY to your Supabase API key.")
    return create_client(url, key)


class QueryError(RuntimeError):
    """A Supabase request failed. `code` is the PostgreSQL error code when known."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


def raise_for_error(response: object, action: str) -> list:
    """
    Raise QueryError if a Supabase response carries an error; return its rows.

    Older supabase-py versions report errors on the response object instead of
    raising APIError, so every query also goes through this check.
    """

    error = getattr(response, "error", None)
    if error:
        raise QueryError(f"Failed to {action}: {error}")
    data = getattr(response, "data", None)
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def run_query(query: Any, action: str) -> Any:
    """
    Run a query builder and return the raw response (for counts).

    postgrest raises APIError for error responses; it is re-raised as
    QueryError so callers only ever handle RuntimeError.
    """

    try:
        response = query.execute()
    except APIError as e:
        raise QueryError(f"Failed to {action}: {e.message or e}", code=e.code) from e
    raise_for_error(response, action)
    return response


def execute(query: Any, action: str) -> list:
    """Run a query builder and return its rows."""

    return raise_for_error(run_query(query, action), action)


__all__ = ["QueryError", "execute", "get_supabase", "raise_for_error", "run_query"]
