"""
Request validation and canonical hashing.

Validation runs before any series is loaded or any run record is created,
so a rejected request leaves no trace in the result sink.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from finhub_engine.backtest.errors import ValidationError
from finhub_engine.backtest.models import TREND_BREAKOUT, BacktestRequest
from finhub_engine.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_STRATEGIES = frozenset({TREND_BREAKOUT})


def compute_request_hash(request: BacktestRequest) -> str:
    """
    SHA-256 of the request's canonical JSON.

    Keys are sorted and separators compact, so two requests with the same
    values always hash the same regardless of how the caller built them.
    """
    payload = json.dumps(
        request.canonical_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RequestValidator:
    """Normalizes caller input into a BacktestRequest for a supported strategy."""

    def __init__(self, supported_strategies: frozenset[str] = SUPPORTED_STRATEGIES) -> None:
        self.supported_strategies = supported_strategies

    def validate(self, payload: BacktestRequest | Mapping[str, Any]) -> BacktestRequest:
        """
        Validate caller input.

        Args:
            payload: A BacktestRequest or the caller's JSON mapping

        Returns:
            Normalized, immutable BacktestRequest

        Raises:
            ValidationError: malformed input or unsupported strategy
        """
        if isinstance(payload, BacktestRequest):
            request = payload
        elif isinstance(payload, Mapping):
            try:
                request = BacktestRequest.model_validate(dict(payload))
            except PydanticValidationError as e:
                errors = [
                    {
                        "field": ".".join(str(part) for part in err["loc"]),
                        "message": err["msg"],
                        "type": err["type"],
                    }
                    for err in e.errors()
                ]
                fields = ", ".join(err["field"] or "request" for err in errors)
                raise ValidationError(f"Invalid backtest request: {fields}", errors) from e
        else:
            raise ValidationError(
                f"Backtest request must be a mapping, got {type(payload).__name__}"
            )

        if request.strategy_id not in self.supported_strategies:
            raise ValidationError(
                f"Unsupported strategy: {request.strategy_id}",
                [
                    {
                        "field": "strategy_id",
                        "message": f"must be one of {sorted(self.supported_strategies)}",
                        "type": "unsupported_strategy",
                    }
                ],
            )

        logger.debug(
            "Validated request: strategy=%s universe=%s range=%s..%s",
            request.strategy_id,
            ",".join(request.universe),
            request.start.isoformat(),
            request.end.isoformat(),
        )
        return request


def validate_request(payload: BacktestRequest | Mapping[str, Any]) -> tuple[BacktestRequest, str]:
    """Validate a request and return it with its canonical hash."""
    request = RequestValidator().validate(payload)
    return request, compute_request_hash(request)
