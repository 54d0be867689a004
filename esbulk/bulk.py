"""Bulk request assembly and bulk response inspection."""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from esbulk.options import Options

logger = logging.getLogger(__name__)


def extract_id(record: str, id_field: str) -> Optional[str]:
    """Return the value of id_field in a JSON record as a string, or None.

    A dotted name like "meta.id" is looked up in nested objects when the
    record has no top-level key of that exact name. Records that are not
    JSON objects, missing fields, nulls and non-scalar values yield None.
    """
    try:
        doc = json.loads(record)
    except ValueError:
        logger.debug("record is not valid JSON, no id extracted: %.80s", record)
        return None
    if not isinstance(doc, dict):
        return None
    if id_field in doc:
        value = doc[id_field]
    else:
        value = doc
        for key in id_field.split("."):
            if not isinstance(value, dict) or key not in value:
                return None
            value = value[key]
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def action_header(options: Options, doc_id: Optional[str] = None) -> str:
    meta = {"_index": options.index}
    if options.doc_type:
        meta["_type"] = options.doc_type
    if doc_id is not None:
        meta["_id"] = doc_id
    return json.dumps({"index": meta})


@dataclass
class BulkRequest:
    """Header and payload lines for one batch, in batch order."""

    lines: List[str]
    size: int

    @classmethod
    def from_records(cls, records: Sequence[str], options: Options) -> "BulkRequest":
        lines = []
        for record in records:
            doc_id = extract_id(record, options.id_field) if options.id_field else None
            lines.append(action_header(options, doc_id))
            lines.append(record)
        return cls(lines=lines, size=len(records))


@dataclass
class BulkOutcome:
    took: int = 0
    items: int = 0
    failures: List[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def inspect_bulk_response(body: Any) -> BulkOutcome:
    """Collect per-document failures from a bulk response body.

    An item fails when it carries an "error" or a status of 300 or more.
    A response flagged with errors but without items counts as one failure.
    """
    if not isinstance(body, dict):
        return BulkOutcome(failures=[{"position": None, "status": None, "error": "unreadable bulk response"}])
    items = body.get("items")
    outcome = BulkOutcome(took=body.get("took") or 0, items=len(items) if isinstance(items, list) else 0)
    if isinstance(items, list):
        for position, item in enumerate(items):
            # Each item is keyed by its action name, e.g. {"index": {...}}.
            result = next(iter(item.values()), {}) if isinstance(item, dict) and item else {}
            status = result.get("status", 0) if isinstance(result, dict) else 0
            error = result.get("error") if isinstance(result, dict) else None
            if error is not None or (isinstance(status, int) and status >= 300):
                outcome.failures.append({
                    "position": position,
                    "status": status,
                    "id": result.get("_id") if isinstance(result, dict) else None,
                    "error": error,
                })
    if body.get("errors") and not outcome.failures:
        outcome.failures.append({"position": None, "status": None, "error": "errors flagged without failed items"})
    return outcome


def describe_failure(failure: dict) -> str:
    error = failure.get("error")
    if isinstance(error, dict):
        reason = f"{error.get('type', 'error')}: {error.get('reason', '')}"
    else:
        reason = str(error)
    return f"item {failure.get('position')} status={failure.get('status')} id={failure.get('id')} {reason}"
