"""Pagination state machine."""

from inkreader.pagination.controller import PaginationController

__all__ = ["PaginationController"]
