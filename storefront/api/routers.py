from fastapi import APIRouter
from storefront.api import version_prefix
from storefront.auth.routes import auth_router
from storefront.products.routes import prods_public_router, prods_admin_router
from storefront.orders.routes import orders_router, orders_admin_router
from storefront.uploads.routes import uploads_router
from storefront.common.routes import home_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(prods_public_router, prefix="/products", tags=["products-public"])
public_routers.include_router(orders_router, tags=["orders"])
public_routers.include_router(home_router, tags=["home"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin")

admin_routers.include_router(auth_router, prefix="/auth", tags=["auth"])
admin_routers.include_router(prods_admin_router, prefix="/products", tags=["products-admin"])
admin_routers.include_router(orders_admin_router, prefix="/orders", tags=["orders-admin"])
admin_routers.include_router(uploads_router, prefix="/blob", tags=["uploads-admin"])
