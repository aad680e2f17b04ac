import httpx
from storefront.common.custom_exceptions import ConfigurationError
from storefront.common.retries import retry_http
from storefront.config.settings import config_settings
from storefront.uploads.constants import BLOB_API_VERSION, BLOB_TIMEOUT_SECONDS, logger


def blob_token() -> str:
    if not config_settings.BLOB_READ_WRITE_TOKEN:
        raise ConfigurationError("Missing BLOB_READ_WRITE_TOKEN")
    return config_settings.BLOB_READ_WRITE_TOKEN


@retry_http("blob")
async def put_blob(pathname: str, content: bytes, content_type: str) -> dict:
    """Store content publicly under pathname; returns the provider's {url, pathname, ...} record."""
    headers = {
        "Authorization": f"Bearer {blob_token()}",
        "x-api-version": BLOB_API_VERSION,
        "x-content-type": content_type,
        "x-add-random-suffix": "0",
    }
    async with httpx.AsyncClient(base_url=config_settings.BLOB_API_BASE, timeout=BLOB_TIMEOUT_SECONDS) as client:
        resp = await client.put(f"/{pathname}", content=content, headers=headers)
        resp.raise_for_status()
        data = resp.json()
    logger.info("blob.upload.stored", extra={"blob_path": data.get("pathname", pathname), "size": len(content)})
    return data
