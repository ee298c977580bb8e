"""Normalize provider responses into DispatchStatus."""

from __future__ import annotations

import json
import logging
from http import HTTPStatus
from typing import Any

from fcmpush.exceptions import TransportError
from fcmpush.models.status import ERROR_CODE_KEY, DispatchStatus

logger = logging.getLogger(__name__)


def _ok(success: int, failure: int) -> bool:
    # Any failure makes the whole batch not ok, even with successes
    return success > 0 and failure == 0


def _result_entry(response: Any) -> dict[str, str]:
    entry = {
        "success": "true" if response.success else "false",
        "message_id": response.message_id or "",
    }
    exception = getattr(response, "exception", None)
    if exception is not None:
        entry["error"] = str(exception)
        # firebase_admin.exceptions.FirebaseError carries a canonical code
        code = getattr(exception, "code", None)
        if code:
            entry[ERROR_CODE_KEY] = str(code)
    return entry


def status_from_batch(batch: Any) -> DispatchStatus:
    """
    Convert a firebase-admin BatchResponse.

    Counts are copied verbatim and results keep the order of the
    addressed tokens. Status code is 200 when anything succeeded, 500
    otherwise.
    """
    success = batch.success_count
    failure = batch.failure_count
    status_code = HTTPStatus.OK if success > 0 else HTTPStatus.INTERNAL_SERVER_ERROR

    status = DispatchStatus(
        ok=_ok(success, failure),
        status_code=int(status_code),
        success=success,
        failure=failure,
        canonical_ids=0,
        results=[_result_entry(response) for response in batch.responses],
    )

    logger.info(
        "Batch response",
        extra={"success": success, "failure": failure, "ok": status.ok},
    )
    return status


def status_from_message_id(message_id: str) -> DispatchStatus:
    """Status for a single successful topic/token/condition send."""
    return DispatchStatus(
        ok=True,
        status_code=int(HTTPStatus.OK),
        success=1,
        failure=0,
        message_id=message_id,
    )


def _stringify_result(result: Any) -> dict[str, str]:
    if not isinstance(result, dict):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in result.items()}


def status_from_legacy(status_code: int, body: str, retry_after: str = "") -> DispatchStatus:
    """
    Convert a legacy HTTP API response.

    A non-200 response keeps the raw body as the error. A 200 body is
    either a multicast result (success/failure counts and per-token
    results) or a topic result (message_id or error).

    Raises:
        TransportError: If a 200 body is not valid JSON
    """
    if status_code != HTTPStatus.OK:
        return DispatchStatus(
            ok=False,
            status_code=status_code,
            error=body,
            retry_after=retry_after,
        )

    try:
        parsed = json.loads(body)
    except ValueError as e:
        msg = "Legacy response body is not valid JSON"
        raise TransportError(msg, context={"status_code": status_code, "body": body[:400]}) from e

    if not isinstance(parsed, dict):
        msg = "Legacy response body is not a JSON object"
        raise TransportError(msg, context={"status_code": status_code, "body": body[:400]})

    results = [_stringify_result(result) for result in parsed.get("results") or []]
    message_id = parsed.get("message_id")
    error = parsed.get("error")

    if "success" in parsed or "failure" in parsed or results:
        success = int(parsed.get("success") or 0)
        failure = int(parsed.get("failure") or 0)
    else:
        # Topic response: one message id or one error
        success = 1 if message_id is not None and error is None else 0
        failure = 1 if error is not None else 0

    return DispatchStatus(
        ok=_ok(success, failure),
        status_code=status_code,
        multicast_id=int(parsed.get("multicast_id") or 0),
        success=success,
        failure=failure,
        canonical_ids=int(parsed.get("canonical_ids") or 0),
        results=results,
        message_id=str(message_id) if message_id is not None else None,
        error=str(error) if error is not None else None,
        retry_after=retry_after,
    )
