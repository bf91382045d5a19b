"""
DynamoDB single-table client.

Supports both DynamoDB Local (development) and AWS DynamoDB (production).
Set DYNAMODB_ENDPOINT env var for local, omit for AWS.
"""

from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from amenity_heatmap.utils.helpers import utc_now
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)

BATCH_GET_LIMIT = 100


class DynamoDBClient:
    """Client for DynamoDB single-table operations."""

    def __init__(
        self,
        table_name: str,
        region: str = "ap-northeast-1",
        endpoint_url: str | None = None,
    ):
        self.table_name = table_name
        kwargs: dict[str, Any] = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
            logger.info(f"Using DynamoDB Local at {endpoint_url}")

        self.resource = boto3.resource("dynamodb", **kwargs)
        self.table = self.resource.Table(table_name)

    def put_item(self, item: dict[str, Any]) -> None:
        """Put an item into the table, replacing any existing item."""
        self.table.put_item(Item=item)

    def put_item_if_absent(self, item: dict[str, Any]) -> bool:
        """
        Put an item only if no item with the same PK exists.

        Returns:
            True if the item was written, False if the key already existed
        """
        try:
            self.table.put_item(
                Item=item, ConditionExpression="attribute_not_exists(PK)"
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == (
                "ConditionalCheckFailedException"
            ):
                return False
            raise
        return True

    def append_to_data_list(self, pk: str, sk: str, attribute: str, value: Any) -> bool:
        """
        Append ``value`` to the list ``Data.<attribute>`` unless already present.

        Returns:
            True if the list changed, False if the value was already there
        """
        try:
            self.table.update_item(
                Key={"PK": pk, "SK": sk},
                UpdateExpression=(
                    "SET #data.#attr = list_append(#data.#attr, :values), "
                    "#meta.updatedAt = :now"
                ),
                ConditionExpression=(
                    "attribute_exists(PK) AND NOT contains(#data.#attr, :value)"
                ),
                ExpressionAttributeNames={
                    "#data": "Data",
                    "#attr": attribute,
                    "#meta": "Metadata",
                },
                ExpressionAttributeValues={
                    ":values": [value],
                    ":value": value,
                    ":now": utc_now().isoformat(),
                },
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == (
                "ConditionalCheckFailedException"
            ):
                return False
            raise
        return True

    def get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Get a single item by PK and SK."""
        response = self.table.get_item(Key={"PK": pk, "SK": sk})
        return response.get("Item")

    def batch_get(self, keys: list[tuple[str, str]]) -> list[dict[str, Any]]:
        """
        Get many items by (PK, SK), retrying unprocessed keys.

        Args:
            keys: (PK, SK) pairs; duplicates are ignored
        """
        unique_keys = list(dict.fromkeys(keys))
        items: list[dict[str, Any]] = []

        for start in range(0, len(unique_keys), BATCH_GET_LIMIT):
            chunk = unique_keys[start : start + BATCH_GET_LIMIT]
            request: dict[str, Any] = {
                self.table_name: {"Keys": [{"PK": pk, "SK": sk} for pk, sk in chunk]}
            }
            while request:
                response = self.resource.batch_get_item(RequestItems=request)
                items.extend(response.get("Responses", {}).get(self.table_name, []))
                request = response.get("UnprocessedKeys") or {}

        return items

    def query(
        self,
        pk: str,
        sk_prefix: str | None = None,
        index_name: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Query items by partition key with an optional sort key prefix.

        Follows ``LastEvaluatedKey`` until every page is read or ``limit``
        items have been collected.

        Args:
            pk: Partition key value
            sk_prefix: Sort key prefix (begins_with)
            index_name: GSI name (e.g., "GSI1")
            limit: Max items to return
        """
        pk_attr = "GSI1PK" if index_name else "PK"
        sk_attr = "GSI1SK" if index_name else "SK"

        key_condition = Key(pk_attr).eq(pk)
        if sk_prefix:
            key_condition = key_condition & Key(sk_attr).begins_with(sk_prefix)

        kwargs: dict[str, Any] = {"KeyConditionExpression": key_condition}
        if index_name:
            kwargs["IndexName"] = index_name
        if limit:
            kwargs["Limit"] = limit

        items: list[dict[str, Any]] = []
        while True:
            response = self.table.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key or (limit and len(items) >= limit):
                break
            kwargs["ExclusiveStartKey"] = last_key

        return items[:limit] if limit else items

    def query_gsi1(
        self,
        gsi1pk: str,
        sk_prefix: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query GSI1 index."""
        return self.query(
            pk=gsi1pk,
            sk_prefix=sk_prefix,
            index_name="GSI1",
            limit=limit,
        )

    def create_table_if_not_exists(self) -> None:
        """Create the table (for DynamoDB Local development)."""
        try:
            self.table.load()
            logger.info(f"Table {self.table_name} already exists")
        except ClientError:
            client = self.table.meta.client
            client.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "PK", "AttributeType": "S"},
                    {"AttributeName": "SK", "AttributeType": "S"},
                    {"AttributeName": "GSI1PK", "AttributeType": "S"},
                    {"AttributeName": "GSI1SK", "AttributeType": "S"},
                ],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": "GSI1",
                        "KeySchema": [
                            {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                            {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            logger.info(f"Created table {self.table_name}")
