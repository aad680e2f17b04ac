import re

PRODUCTS = "products"
PRODUCTS_INDEX = "products:index"
ORDERS_INDEX = "orders:index"


def product(slug: str) -> str:
    return f"product:{slug}"

def stock(slug: str) -> str:
    return f"stock:{slug}"

def order(order_id: str) -> str:
    return f"order:{order_id}"

def archived(slug: str) -> str:
    return f"archived:{slug}"

def published(slug: str) -> str:
    return f"published:{slug}"


def _key_part(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_.:-]", "_", value)

def rate_limit(namespace: str, client_ip: str, bucket: int) -> str:
    return f"ratelimit:{_key_part(namespace)}:{_key_part(client_ip)}:{bucket}"
