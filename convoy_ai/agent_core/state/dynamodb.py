"""DynamoDB key/value client.

Items have the shape ``{key: S, value: S, expires_at: N}``. boto3 is
synchronous, so every call runs in a worker thread. ``expires_at`` is checked
on read because DynamoDB's own TTL sweeper deletes items lazily.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Optional

import boto3


class DynamoDbKeyValueClient:
    provider = "dynamodb"

    def __init__(self, table: str, *, region: Optional[str] = None, client: Any = None) -> None:
        self._table = table
        self._client = client or boto3.client("dynamodb", region_name=region)

    def _get_item(self, key: str) -> Optional[str]:
        response = self._client.get_item(TableName=self._table, Key={"key": {"S": key}}, ConsistentRead=True)
        item = response.get("Item")
        if not item:
            return None
        expires_at = item.get("expires_at")
        if expires_at is not None and float(expires_at["N"]) <= time.time():
            return None
        return item["value"]["S"]

    def _put_item(self, key: str, value: str, ttl: Optional[int]) -> None:
        item = {"key": {"S": key}, "value": {"S": value}}
        if ttl:
            item["expires_at"] = {"N": str(math.ceil(time.time() + ttl))}
        self._client.put_item(TableName=self._table, Item=item)

    def _delete_item(self, key: str) -> None:
        self._client.delete_item(TableName=self._table, Key={"key": {"S": key}})

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_item, key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await asyncio.to_thread(self._put_item, key, value, ttl)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_item, key)

    async def aclose(self) -> None:
        return None
