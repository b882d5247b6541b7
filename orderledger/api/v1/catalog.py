from uuid import UUID

from fastapi import APIRouter, Depends, status

from orderledger.core.dependencies import get_catalog_service, get_recipe_service
from orderledger.schemas.catalog import CategoryRequest, MenuItemRequest, MenuItemUpdate, RecipeRequest
from orderledger.schemas.response import SuccessResponse
from orderledger.services.catalog_service import CatalogService
from orderledger.services.recipe_costing import RecipeService

router = APIRouter()


# ----------- Categories -----------

@router.post("/categories", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_category_endpoint(
    restaurant_id: UUID, payload: CategoryRequest, catalog: CatalogService = Depends(get_catalog_service)
):
    category = await catalog.create_category(restaurant_id, payload)
    return SuccessResponse(data=category.model_dump(mode="json"))


@router.get("/categories", response_model=SuccessResponse)
async def list_categories_endpoint(restaurant_id: UUID, catalog: CatalogService = Depends(get_catalog_service)):
    categories = await catalog.list_categories(restaurant_id)
    return SuccessResponse(data=[c.model_dump(mode="json") for c in categories])


# ----------- Menu -----------

@router.post("/menu-items", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_menu_item_endpoint(
    restaurant_id: UUID, payload: MenuItemRequest, catalog: CatalogService = Depends(get_catalog_service)
):
    menu_item = await catalog.create_menu_item(restaurant_id, payload)
    return SuccessResponse(data=menu_item.model_dump(mode="json"))


@router.get("/menu-items", response_model=SuccessResponse)
async def list_menu_items_endpoint(restaurant_id: UUID, catalog: CatalogService = Depends(get_catalog_service)):
    """Menu with each item's current unit cost."""
    menu_items = await catalog.list_menu_items(restaurant_id)
    return SuccessResponse(data=[m.model_dump(mode="json") for m in menu_items])


@router.get("/menu-items/{menu_item_id}", response_model=SuccessResponse)
async def get_menu_item_endpoint(
    restaurant_id: UUID, menu_item_id: UUID, catalog: CatalogService = Depends(get_catalog_service)
):
    menu_item = await catalog.get_menu_item(restaurant_id, menu_item_id)
    return SuccessResponse(data=menu_item.model_dump(mode="json"))


@router.patch("/menu-items/{menu_item_id}", response_model=SuccessResponse)
async def update_menu_item_endpoint(
    restaurant_id: UUID,
    menu_item_id: UUID,
    payload: MenuItemUpdate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Price, status, category or cost source. Open orders keep the prices they were given."""
    menu_item = await catalog.update_menu_item(restaurant_id, menu_item_id, payload)
    return SuccessResponse(data=menu_item.model_dump(mode="json"))


@router.delete("/menu-items/{menu_item_id}", response_model=SuccessResponse)
async def delete_menu_item_endpoint(
    restaurant_id: UUID, menu_item_id: UUID, catalog: CatalogService = Depends(get_catalog_service)
):
    menu_item = await catalog.delete_menu_item(restaurant_id, menu_item_id)
    return SuccessResponse(data=menu_item.model_dump(mode="json"))


# ----------- Recipes -----------

@router.post("/recipes", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_recipe_endpoint(
    restaurant_id: UUID, payload: RecipeRequest, recipes: RecipeService = Depends(get_recipe_service)
):
    """Saves a recipe with its cost computed from today's average ingredient costs."""
    recipe = await recipes.save_recipe(restaurant_id, payload)
    return SuccessResponse(data=recipe.model_dump(mode="json"))


@router.put("/recipes/{recipe_id}", response_model=SuccessResponse)
async def update_recipe_endpoint(
    restaurant_id: UUID,
    recipe_id: UUID,
    payload: RecipeRequest,
    recipes: RecipeService = Depends(get_recipe_service),
):
    recipe = await recipes.save_recipe(restaurant_id, payload, recipe_id=recipe_id)
    return SuccessResponse(data=recipe.model_dump(mode="json"))


@router.get("/recipes", response_model=SuccessResponse)
async def list_recipes_endpoint(restaurant_id: UUID, recipes: RecipeService = Depends(get_recipe_service)):
    return SuccessResponse(data=[r.model_dump(mode="json") for r in await recipes.list_recipes(restaurant_id)])


@router.get("/recipes/{recipe_id}", response_model=SuccessResponse)
async def get_recipe_endpoint(
    restaurant_id: UUID, recipe_id: UUID, recipes: RecipeService = Depends(get_recipe_service)
):
    """The saved recipe plus what it would cost at today's ingredient prices."""
    recipe = await recipes.get_recipe(restaurant_id, recipe_id)
    current = await recipes.current_cost(restaurant_id, recipe_id)
    return SuccessResponse(data={**recipe.model_dump(mode="json"), "current_cost": str(current)})
