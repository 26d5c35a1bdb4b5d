from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request

from querycontract.schemas.query import QueryRequest
from querycontract.services.composer import QueryContract
from querycontract.services.validator import validate

_LOG = logging.getLogger("querycontract.api")


def raw_query_params(request: Request) -> dict[str, Any]:
    """Repeated query keys become lists, everything else stays a string."""
    raw: dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in raw:
            continue
        values = request.query_params.getlist(key)
        raw[key] = values if len(values) > 1 else values[0]
    return raw


def contract_query(contract: QueryContract):
    def _inner(request: Request) -> QueryRequest:
        result = validate(contract, raw_query_params(request))
        if not result.ok:
            _LOG.info("query rejected path=%s errors=%d", request.url.path, len(result.errors))
            raise HTTPException(status_code=422, detail=[err.as_dict() for err in result.errors])
        return result.value

    return _inner
