"""DynamoDB-backed provider store (single-table layout).

Key layout:
    pk=TENANT#<t>                 sk=PROVIDER#<id>     provider config
    pk=TENANT#<t>#USAGE           sk=<iso>#<uuid>      usage log
    pk=TENANT#<t>#HEALTH#<id>     sk=<iso>#<uuid>      health history
    pk=TENANT#<t>#MESSAGE         sk=MESSAGE#<id>      analysis metadata
    pk=TENANT#<t>#IMPORTANT       sk=MESSAGE#<id>      important messages
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from messageflow.providers.models import (
    AnalysisResult,
    HealthCheckResult,
    ProviderConfig,
    UsageRecord,
)
from messageflow.storage.crypto import SecretCipher
from messageflow.storage.store import ProviderStore, usage_row


def _to_dynamo(value):
    """DynamoDB rejects floats; store them as Decimal."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _tenant_pk(tenant_id: int) -> str:
    return f"TENANT#{tenant_id}"


def _provider_sk(provider_id: int) -> str:
    return f"PROVIDER#{provider_id:010d}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoDBProviderStore(ProviderStore):
    """Reads and writes provider records in one DynamoDB table."""

    def __init__(self, table_name: str, region: str = "us-east-1", cipher: SecretCipher | None = None):
        super().__init__(cipher)
        self._table_name = table_name
        self._region = region
        self._table = None

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    # --- provider configs ---

    def _query_all(self, **kwargs) -> list[dict]:
        """Run a query across every result page."""
        table = self._get_table()
        items = []
        while True:
            resp = table.query(**kwargs)
            items.extend(resp.get("Items", []))
            if "LastEvaluatedKey" not in resp:
                return items
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

    def _query_providers(self, tenant_id: int) -> list[ProviderConfig]:
        from boto3.dynamodb.conditions import Key

        items = self._query_all(
            KeyConditionExpression=Key("pk").eq(_tenant_pk(tenant_id)) & Key("sk").begins_with("PROVIDER#"),
        )
        return [ProviderConfig.from_dict(_from_dynamo(item)) for item in items]

    async def _active(self, tenant_id: int) -> list[ProviderConfig]:
        configs = await asyncio.to_thread(self._query_providers, tenant_id)
        active = [c for c in configs if c.is_active]
        return sorted(active, key=lambda c: (not c.is_default, c.id))

    async def list_providers(self, tenant_id: int) -> list[ProviderConfig]:
        return [self._decrypt_config(c) for c in await self._active(tenant_id)]

    async def get_default_provider(self, tenant_id: int) -> ProviderConfig | None:
        for config in await self._active(tenant_id):
            if config.is_default:
                return self._decrypt_config(config)
        return None

    def _get_provider_item(self, tenant_id: int, provider_id: int) -> dict | None:
        resp = self._get_table().get_item(
            Key={"pk": _tenant_pk(tenant_id), "sk": _provider_sk(provider_id)}
        )
        return resp.get("Item")

    async def get_provider_by_id(self, tenant_id: int, provider_id: int) -> ProviderConfig | None:
        item = await asyncio.to_thread(self._get_provider_item, tenant_id, provider_id)
        if item is None:
            return None
        config = ProviderConfig.from_dict(_from_dynamo(item))
        if not config.is_active:
            return None
        return self._decrypt_config(config)

    async def list_provider_ids(self, tenant_id: int) -> list[int]:
        return [c.id for c in await self._active(tenant_id)]

    async def list_all_providers(self, tenant_id: int) -> list[ProviderConfig]:
        configs = await asyncio.to_thread(self._query_providers, tenant_id)
        return [replace(c, api_key="") for c in sorted(configs, key=lambda c: c.id)]

    def _transact_save(self, tenant_id: int, stored: ProviderConfig, clear_default: list[int]) -> None:
        """Put the provider and clear other defaults in one transaction."""
        from boto3.dynamodb.types import TypeSerializer

        serializer = TypeSerializer()
        table = self._get_table()

        def key(provider_id: int) -> dict:
            return {
                "pk": serializer.serialize(_tenant_pk(tenant_id)),
                "sk": serializer.serialize(_provider_sk(provider_id)),
            }

        item = {"pk": _tenant_pk(tenant_id), "sk": _provider_sk(stored.id), **_to_dynamo(stored.to_dict())}
        actions = [{
            "Put": {
                "TableName": self._table_name,
                "Item": {k: serializer.serialize(v) for k, v in item.items()},
            }
        }]
        for provider_id in clear_default:
            actions.append({
                "Update": {
                    "TableName": self._table_name,
                    "Key": key(provider_id),
                    "UpdateExpression": "SET is_default = :false",
                    "ExpressionAttributeValues": {":false": serializer.serialize(False)},
                }
            })
        table.meta.client.transact_write_items(TransactItems=actions)

    async def save_provider(self, tenant_id: int, config: ProviderConfig) -> ProviderConfig:
        existing = {c.id: c for c in await asyncio.to_thread(self._query_providers, tenant_id)}

        stored = replace(config)
        if not stored.id:
            stored.id = max(existing, default=0) + 1
        if config.api_key:
            stored.api_key = self._encrypt_key(config.api_key)
        elif stored.id in existing:
            stored.api_key = existing[stored.id].api_key

        clear_default = []
        if stored.is_default:
            clear_default = [c.id for c in existing.values() if c.is_default and c.id != stored.id]

        await asyncio.to_thread(self._transact_save, tenant_id, stored, clear_default)
        return replace(stored, api_key="")

    async def delete_provider(self, tenant_id: int, provider_id: int) -> bool:
        def _delete() -> bool:
            resp = self._get_table().delete_item(
                Key={"pk": _tenant_pk(tenant_id), "sk": _provider_sk(provider_id)},
                ReturnValues="ALL_OLD",
            )
            return "Attributes" in resp

        return await asyncio.to_thread(_delete)

    # --- records ---

    async def insert_usage(self, tenant_id, provider_id, message_id, record: UsageRecord, cost_in, cost_out) -> None:
        row = usage_row(tenant_id, provider_id, message_id, record, cost_in, cost_out)
        item = {
            "pk": f"{_tenant_pk(tenant_id)}#USAGE",
            "sk": f"{row['created_at']}#{uuid.uuid4().hex[:8]}",
            **_to_dynamo(row),
        }
        await asyncio.to_thread(self._get_table().put_item, Item=item)

    async def list_usage(self, tenant_id: int, provider_id: int | None = None) -> list[dict]:
        from boto3.dynamodb.conditions import Attr, Key

        kwargs = {"KeyConditionExpression": Key("pk").eq(f"{_tenant_pk(tenant_id)}#USAGE")}
        if provider_id is not None:
            kwargs["FilterExpression"] = Attr("provider_id").eq(provider_id)
        items = await asyncio.to_thread(self._query_all, **kwargs)
        return [
            {k: v for k, v in _from_dynamo(item).items() if k not in ("pk", "sk")}
            for item in items
        ]

    async def insert_health(self, tenant_id: int, provider_id: int, result: HealthCheckResult) -> None:
        data = result.to_dict()
        item = {
            "pk": f"{_tenant_pk(tenant_id)}#HEALTH#{provider_id}",
            "sk": f"{data['timestamp']}#{uuid.uuid4().hex[:8]}",
            "provider_id": provider_id,
            **_to_dynamo(data),
        }
        await asyncio.to_thread(self._get_table().put_item, Item=item)
        await self.set_provider_health(tenant_id, provider_id, result.status)

    async def list_health(self, tenant_id: int, provider_id: int, limit: int = 20) -> list[HealthCheckResult]:
        from boto3.dynamodb.conditions import Key

        def _query() -> list[dict]:
            resp = self._get_table().query(
                KeyConditionExpression=Key("pk").eq(f"{_tenant_pk(tenant_id)}#HEALTH#{provider_id}"),
                ScanIndexForward=False,
                Limit=limit,
            )
            return resp.get("Items", [])

        items = await asyncio.to_thread(_query)
        return [HealthCheckResult.from_dict(_from_dynamo(item)) for item in items]

    async def set_provider_health(self, tenant_id: int, provider_id: int, status: str) -> None:
        await asyncio.to_thread(
            self._get_table().update_item,
            Key={"pk": _tenant_pk(tenant_id), "sk": _provider_sk(provider_id)},
            UpdateExpression="SET health_status = :s, last_health_check = :t",
            ConditionExpression="attribute_exists(pk)",
            ExpressionAttributeValues={":s": status, ":t": _now()},
        )

    async def save_analysis(self, tenant_id: int, message_id: int, result: AnalysisResult) -> None:
        table = self._get_table()
        await asyncio.to_thread(
            table.put_item,
            Item={
                "pk": f"{_tenant_pk(tenant_id)}#MESSAGE",
                "sk": f"MESSAGE#{message_id}",
                "message_id": message_id,
                "metadata": _to_dynamo(result.to_dict()),
                "updated_at": _now(),
            },
        )
        if not result.is_important:
            return

        def _flag_important() -> None:
            try:
                table.put_item(
                    Item={
                        "pk": f"{_tenant_pk(tenant_id)}#IMPORTANT",
                        "sk": f"MESSAGE#{message_id}",
                        "message_id": message_id,
                        "priority": result.priority,
                        "reason": result.reason,
                        "created_at": _now(),
                    },
                    ConditionExpression="attribute_not_exists(sk)",
                )
            except table.meta.client.exceptions.ConditionalCheckFailedException:
                pass  # already flagged

        await asyncio.to_thread(_flag_important)
