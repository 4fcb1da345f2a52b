"""
DynamoDB Job Store backend.

One item per job, keyed by "id". Items are the JSON form of the Job model
with floats carried as Decimal (DynamoDB rejects Python floats).
Listing per owner uses a filtered scan; a GSI on owner_id would replace it
at scale without changing the interface.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from .models import Job
from .errors import JobNotFoundError, JobStoreError
from .store import JobStore

logger = logging.getLogger(__name__)


def _to_dynamo(value: Any) -> Any:
    """Convert a JSON-compatible value to DynamoDB types (float -> Decimal)."""
    return json.loads(json.dumps(value), parse_float=Decimal)


def _from_dynamo(item: Dict[str, Any]) -> Job:
    return Job.model_validate(item)


class DynamoJobStore(JobStore):
    """Job Store backed by a DynamoDB table."""

    def __init__(self, table_name: str, region_name: Optional[str] = None, table=None):
        """
        Args:
            table_name: DynamoDB table name (partition key "id")
            region_name: AWS region
            table: Optional pre-built boto3 Table resource (used by tests)
        """
        self.table_name = table_name
        if table is None:
            table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        self._table = table

    def create_job(self, **fields: Any) -> Job:
        job = Job(**fields)
        item = _to_dynamo(job.model_dump(mode="json"))
        try:
            self._table.put_item(Item=item, ConditionExpression="attribute_not_exists(id)")
        except (BotoCoreError, ClientError) as e:
            raise JobStoreError(f"Failed to create job {job.id}: {e}") from e
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        try:
            result = self._table.get_item(Key={"id": job_id})
        except (BotoCoreError, ClientError) as e:
            raise JobStoreError(f"Failed to read job {job_id}: {e}") from e
        item = result.get("Item")
        return _from_dynamo(item) if item else None

    def update_job(self, job_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return

        unknown = set(fields) - set(Job.model_fields)
        if unknown:
            raise JobStoreError(f"Unknown job fields: {', '.join(sorted(unknown))}")

        # Serialize through the model so enums, datetimes and nested models
        # get the same JSON form as on create.
        partial = Job.model_construct(**fields).model_dump(mode="json", include=set(fields))

        expressions = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for index, (key, value) in enumerate(partial.items()):
            names[f"#f{index}"] = key
            values[f":v{index}"] = _to_dynamo(value)
            expressions.append(f"#f{index} = :v{index}")

        try:
            self._table.update_item(
                Key={"id": job_id},
                UpdateExpression="SET " + ", ".join(expressions),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression="attribute_exists(id)",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise JobNotFoundError(job_id) from e
            raise JobStoreError(f"Failed to update job {job_id}: {e}") from e
        except BotoCoreError as e:
            raise JobStoreError(f"Failed to update job {job_id}: {e}") from e

    def list_jobs(self, owner_id: Optional[str] = None) -> List[Job]:
        scan_kwargs: Dict[str, Any] = {}
        if owner_id is not None:
            scan_kwargs["FilterExpression"] = Attr("owner_id").eq(owner_id)

        items: List[Dict[str, Any]] = []
        try:
            while True:
                result = self._table.scan(**scan_kwargs)
                items.extend(result.get("Items", []))
                last_key = result.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            raise JobStoreError(f"Failed to list jobs: {e}") from e

        jobs = [_from_dynamo(item) for item in items]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs
