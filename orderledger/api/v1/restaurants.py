import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from orderledger.core.dependencies import get_catalog_service
from orderledger.schemas.catalog import RestaurantRequest
from orderledger.schemas.response import SuccessResponse
from orderledger.services.catalog_service import CatalogService

router = APIRouter()
log = logging.getLogger("orderledger.api")


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_restaurant_endpoint(payload: RestaurantRequest, catalog: CatalogService = Depends(get_catalog_service)):
    """Registers a restaurant (tenant)."""
    restaurant = await catalog.create_restaurant(payload)
    return SuccessResponse(data=restaurant.model_dump(mode="json"))


@router.get("/{restaurant_id}", response_model=SuccessResponse)
async def get_restaurant_endpoint(restaurant_id: UUID, catalog: CatalogService = Depends(get_catalog_service)):
    restaurant = await catalog.get_restaurant(restaurant_id)
    return SuccessResponse(data=restaurant.model_dump(mode="json"))
