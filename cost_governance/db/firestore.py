import base64
import datetime as dt
import json
import os
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.oauth2 import service_account

from cost_governance.config.logger import get_logger
from cost_governance.core.errors import RecordNotFound, StoreError
from cost_governance.core.periods import day_key, week_key

from .models import CostEntry, DailyUsage, WeeklyUsage
from .store import UsageStore

LOGGER = get_logger("cost_governance.firestore")

WEEKLY_COLLECTION = "weekly_usage"
COST_ENTRY_COLLECTION = "cost_entries"
DAILY_COLLECTION = "usage_daily"


def get_firestore_client() -> firestore.Client:
    LOGGER.info("Firestore client initialization started")
    service_account_base64 = os.getenv("FIREBASE_SERVICE_ACCOUNT_BASE64")
    if not service_account_base64:
        LOGGER.info("FIREBASE_SERVICE_ACCOUNT_BASE64 not set; using default credentials")
        return firestore.Client()

    try:
        decoded_json = base64.b64decode(service_account_base64).decode("utf-8")
        payload = json.loads(decoded_json)
    except (ValueError, json.JSONDecodeError) as exc:
        LOGGER.error("Invalid FIREBASE_SERVICE_ACCOUNT_BASE64 payload: %s", exc)
        raise

    credentials = service_account.Credentials.from_service_account_info(payload)
    project_id: Optional[str] = payload.get("project_id")
    LOGGER.info("Firestore client initialized with explicit credentials")
    return firestore.Client(credentials=credentials, project=project_id)


class FirestoreUsageStore(UsageStore):
    """``UsageStore`` backed by Firestore.

    Firestore paths:
        weekly_usage/{identifier}_{YYYYMMDD}   (week start, quota zone)
        usage_daily/{identifier}_{YYYYMMDD}
        cost_entries/{auto id}
    """

    def __init__(self, db: firestore.Client):
        self._db = db

    def _weekly_ref(self, identifier: str, week_start: dt.datetime) -> firestore.DocumentReference:
        return self._db.collection(WEEKLY_COLLECTION).document(f"{identifier}_{week_key(week_start)}")

    def _daily_ref(self, identifier: str, usage_date: dt.date) -> firestore.DocumentReference:
        return self._db.collection(DAILY_COLLECTION).document(f"{identifier}_{day_key(usage_date)}")

    def find_weekly_usage(self, identifier: str, week_start: dt.datetime) -> Optional[WeeklyUsage]:
        snapshot = self._weekly_ref(identifier, week_start).get()
        if not snapshot.exists:
            return None
        return WeeklyUsage.from_dict(snapshot.to_dict(), id=snapshot.id)

    def insert_weekly_usage(self, row: WeeklyUsage) -> WeeklyUsage:
        doc_ref = self._weekly_ref(row.identifier, row.week_start)
        payload = row.to_dict()
        payload.pop("id", None)
        try:
            doc_ref.create(payload)
        except gcp_exceptions.AlreadyExists as exc:
            raise StoreError(f"Weekly usage already exists: {doc_ref.id}") from exc
        LOGGER.info(
            "Weekly usage row created",
            extra={"identifier": row.identifier, "path": f"{WEEKLY_COLLECTION}/{doc_ref.id}"},
        )
        stored = row.copy()
        stored.id = doc_ref.id
        return stored

    def update_weekly_usage(self, usage_id: str, fields: Dict[str, Any]) -> WeeklyUsage:
        doc_ref = self._db.collection(WEEKLY_COLLECTION).document(usage_id)
        update = _weekly_field_names(fields)
        try:
            doc_ref.update(update)
        except gcp_exceptions.NotFound as exc:
            raise RecordNotFound(f"Weekly usage {usage_id} not found") from exc
        snapshot = doc_ref.get()
        return WeeklyUsage.from_dict(snapshot.to_dict(), id=snapshot.id)

    def increment_weekly_usage(
        self,
        identifier: str,
        week_start: dt.datetime,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> WeeklyUsage:
        doc_ref = self._weekly_ref(identifier, week_start)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> WeeklyUsage:
            snapshot = doc_ref.get(transaction=transaction)
            if snapshot.exists:
                current = WeeklyUsage.from_dict(snapshot.to_dict(), id=doc_ref.id)
            else:
                current = WeeklyUsage(identifier=identifier, week_start=week_start, id=doc_ref.id)
            transaction.set(
                doc_ref,
                build_weekly_increment(identifier, week_start, operation, cost_minor_units, at),
                merge=True,
            )
            return _apply_increment(current, operation, cost_minor_units, at)

        updated = _txn(self._db.transaction())
        LOGGER.info(
            "Weekly usage incremented",
            extra={
                "identifier": identifier,
                "path": f"{WEEKLY_COLLECTION}/{doc_ref.id}",
                "operation": operation,
                "costMinorUnits": cost_minor_units,
                "totalCostMinorUnits": updated.total_cost_minor_units,
            },
        )
        return updated

    def get_weekly_usage_history(self, identifier: str, week_count: int) -> List[WeeklyUsage]:
        if week_count <= 0:
            return []
        query = (
            self._db.collection(WEEKLY_COLLECTION)
            .where(filter=firestore.FieldFilter("identifier", "==", identifier))
            .order_by("weekStart", direction=firestore.Query.DESCENDING)
            .limit(week_count)
        )
        return [WeeklyUsage.from_dict(doc.to_dict(), id=doc.id) for doc in query.stream()]

    def insert_cost_entry(self, entry: CostEntry) -> CostEntry:
        doc_ref = self._db.collection(COST_ENTRY_COLLECTION).document()
        payload = entry.to_dict()
        payload.pop("id", None)
        payload["loggedAt"] = firestore.SERVER_TIMESTAMP
        doc_ref.set(payload)
        LOGGER.info(
            "Cost entry logged",
            extra={"path": f"{COST_ENTRY_COLLECTION}/{doc_ref.id}", "identifier": entry.identifier},
        )
        return CostEntry.from_dict(entry.to_dict(), id=doc_ref.id)

    def list_cost_entries(
        self,
        identifier: str,
        since: Optional[dt.datetime] = None,
        limit: int = 100,
    ) -> List[CostEntry]:
        query = self._db.collection(COST_ENTRY_COLLECTION).where(
            filter=firestore.FieldFilter("identifier", "==", identifier)
        )
        if since is not None:
            query = query.where(filter=firestore.FieldFilter("createdAt", ">=", since))
        query = query.order_by("createdAt", direction=firestore.Query.DESCENDING).limit(limit)
        return [CostEntry.from_dict(doc.to_dict(), id=doc.id) for doc in query.stream()]

    def find_daily_usage(self, identifier: str, usage_date: dt.date) -> Optional[DailyUsage]:
        snapshot = self._daily_ref(identifier, usage_date).get()
        if not snapshot.exists:
            return None
        return DailyUsage.from_dict(snapshot.to_dict(), id=snapshot.id)

    def increment_daily_usage(
        self,
        identifier: str,
        usage_date: dt.date,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> DailyUsage:
        doc_ref = self._daily_ref(identifier, usage_date)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> DailyUsage:
            snapshot = doc_ref.get(transaction=transaction)
            if snapshot.exists:
                current = DailyUsage.from_dict(snapshot.to_dict(), id=doc_ref.id)
            else:
                current = DailyUsage(identifier=identifier, usage_date=usage_date, id=doc_ref.id)
            transaction.set(
                doc_ref,
                build_daily_increment(identifier, usage_date, operation, cost_minor_units, at),
                merge=True,
            )
            current.total_operations += 1
            current.total_cost_minor_units += cost_minor_units
            current.operation_breakdown[operation] = current.operation_breakdown.get(operation, 0) + 1
            current.cost_breakdown[operation] = current.cost_breakdown.get(operation, 0) + cost_minor_units
            current.updated_at = at
            return current

        return _txn(self._db.transaction())

    def list_daily_usage(self, identifier: str, start: dt.date, end: dt.date) -> List[DailyUsage]:
        query = (
            self._db.collection(DAILY_COLLECTION)
            .where(filter=firestore.FieldFilter("identifier", "==", identifier))
            .where(filter=firestore.FieldFilter("usageDate", ">=", start.isoformat()))
            .where(filter=firestore.FieldFilter("usageDate", "<=", end.isoformat()))
            .order_by("usageDate")
        )
        return [DailyUsage.from_dict(doc.to_dict(), id=doc.id) for doc in query.stream()]


def build_weekly_increment(
    identifier: str,
    week_start: dt.datetime,
    operation: str,
    cost_minor_units: int,
    at: dt.datetime,
) -> Dict[str, Any]:
    """Merge payload adding one operation to a weekly row.

    Counters use ``firestore.Increment`` so concurrent writers never clobber
    each other's deltas, including inside the per-operation maps.
    """
    return {
        "identifier": identifier,
        "weekStart": week_start,
        "totalCostMinorUnits": firestore.Increment(cost_minor_units),
        "operationCount": firestore.Increment(1),
        "operationBreakdown": {operation: firestore.Increment(1)},
        "costBreakdown": {operation: firestore.Increment(cost_minor_units)},
        "lastOperationAt": at,
        "updatedAt": firestore.SERVER_TIMESTAMP,
    }


def build_daily_increment(
    identifier: str,
    usage_date: dt.date,
    operation: str,
    cost_minor_units: int,
    at: dt.datetime,
) -> Dict[str, Any]:
    return {
        "identifier": identifier,
        "usageDate": usage_date.isoformat(),
        "totalOperations": firestore.Increment(1),
        "totalCostMinorUnits": firestore.Increment(cost_minor_units),
        "operationBreakdown": {operation: firestore.Increment(1)},
        "costBreakdown": {operation: firestore.Increment(cost_minor_units)},
        "updatedAt": at,
    }


def _apply_increment(row: WeeklyUsage, operation: str, cost_minor_units: int, at: dt.datetime) -> WeeklyUsage:
    row.total_cost_minor_units += cost_minor_units
    row.operation_count += 1
    row.operation_breakdown[operation] = row.operation_breakdown.get(operation, 0) + 1
    row.cost_breakdown[operation] = row.cost_breakdown.get(operation, 0) + cost_minor_units
    row.last_operation_at = at
    return row


_WEEKLY_DOC_FIELDS = {
    "total_cost_minor_units": "totalCostMinorUnits",
    "operation_count": "operationCount",
    "operation_breakdown": "operationBreakdown",
    "cost_breakdown": "costBreakdown",
    "last_operation_at": "lastOperationAt",
}


def _weekly_field_names(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(_WEEKLY_DOC_FIELDS)
    if unknown:
        raise StoreError(f"Cannot update weekly usage fields: {sorted(unknown)}")
    return {_WEEKLY_DOC_FIELDS[k]: v for k, v in fields.items()}
