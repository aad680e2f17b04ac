from prometheus_fastapi_instrumentator import Instrumentator, metrics

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /products/silver-band-01 -> /products/{slug}
    excluded_handlers=["/metrics", "/api/v1/health"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)

instrumentator.add(metrics.default(metric_namespace="laem", metric_subsystem="storefront"))
