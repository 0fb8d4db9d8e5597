# Prometheus exposition
PROMETHEUS_METRIC_PREFIX = "summary_"
QUANTILE_LABEL = "quantile"
SUM_SUFFIX = "_sum"
COUNT_SUFFIX = "_count"
METRIC_NAME_PATTERN = r"^[a-zA-Z_:][a-zA-Z0-9_:]*$"
LABEL_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"

# Service configuration
DEFAULT_QUANTILES_ENV = "SUMMARY_DEFAULT_QUANTILES"
LOG_LEVEL_ENV = "SERVICE_LOG_LEVEL"
