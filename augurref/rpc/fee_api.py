from __future__ import annotations

import logging
import math
import re
from collections.abc import Awaitable
from typing import Any, Callable, Optional

from aiohttp import web

from augurref.service.fee_query import FeeQueryService
from augurref.types.fee_estimate import FeeEstimate
from augurref.types.mempool_snapshot import format_timestamp
from augurref.util.json_util import obj_to_response, text_response

log = logging.getLogger(__name__)

Endpoint = Callable[[web.Request], Awaitable[web.StreamResponse]]

DEFAULT_HISTORY_INTERVAL_SECONDS = 3600
NO_ESTIMATES_MESSAGE = "No fee estimates available yet"
INVALID_BLOCKS_MESSAGE = "Invalid or missing number of blocks"

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or _INTEGER_RE.match(value) is None:
        return None
    return int(value)


def format_block_target(target: float) -> str:
    return str(int(target)) if float(target).is_integer() else str(float(target))


def transform_fee_estimate(fee_estimate: FeeEstimate) -> dict[str, Any]:
    """Shape a FeeEstimate into the public JSON response."""
    return {
        "mempool_update_time": format_timestamp(fee_estimate.timestamp),
        "estimates": {
            format_block_target(target): {
                "probabilities": {
                    f"{probability:.2f}": {"fee_rate": float(f"{fee_rate:.4f}")}
                    for probability, fee_rate in block_target.probabilities.items()
                }
            }
            for target, block_target in fee_estimate.estimates.items()
        },
    }


class FeeRpcApi:
    def __init__(self, fee_query: FeeQueryService):
        self.service = fee_query

    def get_routes(self) -> dict[str, Endpoint]:
        return {
            "/fees": self.get_fees,
            "/fees/target/{num_blocks}": self.get_fees_for_target,
            "/historical_fee": self.get_historical_fee,
            "/historical_fees": self.get_historical_fees,
        }

    async def get_fees(self, request: web.Request) -> web.StreamResponse:
        log.info("Received request for fee estimates")
        current_estimate = self.service.latest_estimate()
        if current_estimate is None:
            log.warning(NO_ESTIMATES_MESSAGE)
            return text_response(NO_ESTIMATES_MESSAGE, status=503)

        response = transform_fee_estimate(current_estimate)
        log.debug(f"Returning fee estimates with {len(response['estimates'])} targets")
        return obj_to_response(response)

    async def get_fees_for_target(self, request: web.Request) -> web.StreamResponse:
        try:
            num_blocks = float(request.match_info["num_blocks"])
        except ValueError:
            num_blocks = math.nan
        if not math.isfinite(num_blocks):
            log.warning("Invalid or missing num_blocks parameter")
            return text_response(INVALID_BLOCKS_MESSAGE, status=400)

        log.info(f"Received request for fee estimates targeting {num_blocks} blocks")
        current_estimate = await self.service.latest_estimate_for_target(num_blocks)
        # an empty estimate means the trailing window had no snapshots
        if current_estimate is None or current_estimate.is_empty():
            log.warning(NO_ESTIMATES_MESSAGE)
            return text_response(NO_ESTIMATES_MESSAGE, status=503)

        response = transform_fee_estimate(current_estimate)
        log.debug(f"Returning fee estimates with {len(response['estimates'])} targets")
        return obj_to_response(response)

    async def get_historical_fee(self, request: web.Request) -> web.StreamResponse:
        log.info("Received request for historical fee estimates")
        timestamp_param = request.query.get("timestamp")
        if timestamp_param is None:
            return text_response("timestamp parameter is required", status=400)
        timestamp = parse_int(timestamp_param)
        if timestamp is None:
            log.warning(f"Unparseable timestamp {timestamp_param!r}")
            return text_response("Failed to parse timestamp, please input a unix timestamp", status=400)

        log.info(f"Fetching historical fee estimate for timestamp: {timestamp}")
        try:
            fee_estimate = await self.service.estimate_at_timestamp(timestamp)
        except (OverflowError, OSError, ValueError):
            log.warning(f"Timestamp out of range: {timestamp}")
            return text_response("Failed to parse timestamp, please input a unix timestamp", status=400)

        if fee_estimate.is_empty():
            message = f"No historical fee estimates available for {timestamp}"
            log.warning(message)
            return text_response(message, status=503)

        response = transform_fee_estimate(fee_estimate)
        log.debug(f"Returning historical fee estimates with {len(response['estimates'])} targets")
        return obj_to_response(response)

    async def get_historical_fees(self, request: web.Request) -> web.StreamResponse:
        log.info("Received request for historical fee estimates")
        start_timestamp = parse_int(request.query.get("start_timestamp"))
        end_timestamp = parse_int(request.query.get("end_timestamp"))
        interval = parse_int(request.query.get("interval"))
        if interval is None or interval <= 0:
            interval = DEFAULT_HISTORY_INTERVAL_SECONDS

        if start_timestamp is None:
            return text_response("start_timestamp parameter is required", status=400)
        if end_timestamp is None:
            return text_response("end_timestamp parameter is required", status=400)

        log.info(
            f"Fetching historical fee estimate for start_timestamp: {start_timestamp} to "
            f"end_timestamp: {end_timestamp} for intervals: {interval} seconds"
        )
        try:
            fee_estimates = await self.service.estimates_over_range(start_timestamp, end_timestamp, interval)
        except (OverflowError, OSError, ValueError):
            log.warning(f"Timestamps out of range: {start_timestamp} to {end_timestamp}")
            return text_response("Failed to parse timestamps, please input unix timestamps", status=400)

        if fee_estimates is None:
            message = (
                f"No historical fee estimates available for start_timestamp {start_timestamp} to "
                f"end_timestamp: {end_timestamp} for interval: {interval} seconds"
            )
            log.warning(message)
            return text_response(message, status=503)

        log.debug(f"Returning {len(fee_estimates)} historical fee estimates")
        return obj_to_response([transform_fee_estimate(estimate) for estimate in fee_estimates])

    def routes(self) -> list[web.RouteDef]:
        return [web.get(path, handler) for path, handler in self.get_routes().items()]
