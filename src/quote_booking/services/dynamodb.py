"""DynamoDB service wrapper for conditional and transactional table operations."""

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, TypeVar

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from quote_booking.models.errors import BookingEngineError, ErrorCode
from quote_booking.utils.logging import get_logger

T = TypeVar("T", bound=BaseModel)

logger = get_logger(__name__)

# Error codes that mean "try again later", never "your write lost"
RETRYABLE_CLIENT_ERRORS: frozenset[str] = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "TransactionConflictException",
        "TransactionInProgressException",
    }
)

_serializer = TypeSerializer()

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class TransactionCancelledError(Exception):
    """Raised when DynamoDB cancels a TransactWriteItems call.

    ``reasons`` holds one cancellation code per transaction item, in order
    (e.g. "None", "ConditionalCheckFailed", "TransactionConflict"). It is
    empty when the service did not report reasons.
    """

    def __init__(self, reasons: list[str]) -> None:
        super().__init__(f"Transaction cancelled: {reasons or 'no reasons reported'}")
        self.reasons = reasons

    @property
    def conditional_check_failed(self) -> bool:
        return "ConditionalCheckFailed" in self.reasons

    def failed_indexes(self) -> list[int]:
        """Positions of the items whose condition failed."""
        return [i for i, r in enumerate(self.reasons) if r == "ConditionalCheckFailed"]


@contextmanager
def transient_store_errors(operation: str) -> Iterator[None]:
    """Translate throttling, timeouts and connection failures to TRANSIENT_FAILURE.

    Other client errors (missing table, validation) propagate unchanged.
    """
    try:
        yield
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "Unknown")
        if code not in RETRYABLE_CLIENT_ERRORS:
            raise
        logger.warning("Store call %s failed with retryable error %s", operation, code)
        raise BookingEngineError(
            ErrorCode.TRANSIENT_FAILURE,
            details={"operation": operation, "reason": code},
        ) from e
    except BotoCoreError as e:
        logger.warning("Store call %s failed: %s", operation, e)
        raise BookingEngineError(
            ErrorCode.TRANSIENT_FAILURE,
            details={"operation": operation, "reason": type(e).__name__},
        ) from e


def _plain(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float for JSON validation."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, set, tuple)):
        return [_plain(v) for v in value]
    return value


def model_to_item(model: BaseModel) -> dict[str, Any]:
    """Dump a model to a resource-API item (ISO datetimes, enum values)."""
    return model.model_dump(mode="json", exclude_none=True)


def item_to_model(model_cls: type[T], item: dict[str, Any]) -> T:
    """Validate a stored item back into a model.

    Goes through JSON so strict models accept ISO datetimes and enum values.
    """
    return model_cls.model_validate_json(json.dumps(_plain(item)))


def serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    """Serialize a resource-API item to the low-level client format."""
    return {k: _serializer.serialize(v) for k, v in item.items() if v is not None}


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"quote-booking-{self.environment}"
        )
        # Bounds every call, including a whole TransactWriteItems request
        timeout = float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "5"))
        config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self._dynamodb = boto3.resource("dynamodb", config=config)
        self._client = boto3.client("dynamodb", config=config)

    def table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        """Get DynamoDB table resource."""
        return self._dynamodb.Table(self.table_name(table))

    # Generic operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent: bool = True,
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict
            consistent: Use a strongly consistent read

        Returns:
            Item dict or None if not found
        """
        response = self._get_table(table).get_item(Key=key, ConsistentRead=consistent)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Update an item with expressions.

        A condition expression makes this a single atomic check-and-set.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional condition for update

        Returns:
            Updated attributes or None if condition failed
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_attribute_values,
                "ReturnValues": "ALL_NEW",
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] | None = response.get("Attributes")
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI, following pagination.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            filter_expression: Additional filter (optional)
            scan_index_forward: Sort order (True=ascending)

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression:
            kwargs["FilterExpression"] = filter_expression

        items: list[dict[str, Any]] = []
        while True:
            response = self._get_table(table).query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
    ) -> list[dict[str, Any]]:
        """Query a GSI by partition key.

        Args:
            table: Table name without prefix
            index_name: GSI name
            partition_key_name: Name of partition key attribute
            partition_key_value: Value to query
            sort_key_condition: Optional sort key condition

        Returns:
            List of items
        """
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        return self.query(table, key_condition, index_name=index_name)

    def transact_write(
        self,
        items: list[dict[str, Any]],
    ) -> None:
        """Execute a transactional write for multiple items.

        All items commit or none do. Items use the low-level client format
        (see ``serialize_item``).

        Args:
            items: List of TransactWriteItem dicts

        Raises:
            TransactionCancelledError: If any condition failed or the
                transaction conflicted with another one.
        """
        try:
            self._client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                reasons = [
                    r.get("Code", "None")
                    for r in e.response.get("CancellationReasons", [])
                ]
                logger.info("Transaction cancelled with reasons %s", reasons)
                raise TransactionCancelledError(reasons) from e
            raise
