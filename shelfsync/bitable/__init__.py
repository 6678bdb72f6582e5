"""Feishu/Lark Bitable open API client."""

from .client import BitableClient
from .fields import FieldsAPI
from .records import RecordsAPI

__all__ = ["BitableClient", "FieldsAPI", "RecordsAPI"]
