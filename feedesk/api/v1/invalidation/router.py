"""Invalidation router: compute (GET) or dispatch (POST) the regions a mutation makes stale."""

from typing import List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from feedesk.api.dependencies import get_dispatcher, get_resolver
from feedesk.core.enums import EntityType, InstitutionContext, Operation
from feedesk.core.exceptions import ServiceError
from feedesk.invalidation.dispatcher import InvalidationDispatcher
from feedesk.invalidation.resolver import InvalidationResolver

router = APIRouter(prefix="/api/v1/invalidation", tags=["invalidation"])


class InvalidationResponse(BaseModel):
    context: InstitutionContext
    entity: EntityType
    operation: Operation
    entity_id: Optional[int] = None
    regions: List[List[Union[str, int]]]


def _sorted_regions(keys) -> List[List[Union[str, int]]]:
    def order(key: Tuple) -> Tuple:
        return tuple(str(part) for part in key)

    return [list(key) for key in sorted(keys, key=order)]


@router.get("/{context}/{entity}/{operation}", response_model=InvalidationResponse)
async def resolve_regions(
    context: InstitutionContext,
    entity: EntityType,
    operation: Operation,
    entity_id: Optional[int] = Query(None),
    strict: bool = Query(False, description="Fail instead of skipping detail regions when entity_id is missing"),
    resolver: InvalidationResolver = Depends(get_resolver),
) -> InvalidationResponse:
    try:
        keys = resolver.resolve(context, entity, operation, entity_id, strict=strict)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return InvalidationResponse(
        context=context, entity=entity, operation=operation, entity_id=entity_id,
        regions=_sorted_regions(keys),
    )


@router.post("/{context}/{entity}/{operation}", response_model=InvalidationResponse)
async def dispatch_regions(
    context: InstitutionContext,
    entity: EntityType,
    operation: Operation,
    entity_id: Optional[int] = Query(None),
    dispatcher: InvalidationDispatcher = Depends(get_dispatcher),
) -> InvalidationResponse:
    keys = dispatcher.dispatch(context, entity, operation, entity_id)
    return InvalidationResponse(
        context=context, entity=entity, operation=operation, entity_id=entity_id,
        regions=_sorted_regions(keys),
    )
