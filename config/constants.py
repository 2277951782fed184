MONGODB_URI_ENV = "MONGODB_URI"
MONGODB_DB_NAME_ENV = "MONGODB_DB_NAME"
GAMES_COLLECTION_ENV = "GAMES_COLLECTION"
MATCHES_COLLECTION_ENV = "MATCHES_COLLECTION"

WORKER_NAME_ENV = "WORKER_NAME"
HEARTBEAT_INTERVAL_SECONDS_ENV = "HEARTBEAT_INTERVAL_SECONDS"
RECONCILE_INTERVAL_SECONDS_ENV = "RECONCILE_INTERVAL_SECONDS"
RECONCILE_ON_START_ENV = "RECONCILE_ON_START"

CHANGE_STREAM_MAX_AWAIT_MS_ENV = "CHANGE_STREAM_MAX_AWAIT_MS"
CHANGE_STREAM_PRE_IMAGES_ENV = "CHANGE_STREAM_PRE_IMAGES"
MAX_RETRIES_ENV = "MAX_RETRIES"
RETRY_DELAY_SECONDS_ENV = "RETRY_DELAY_SECONDS"

FEATURE_FLAGS_ENV = "FEATURE_FLAGS"
LOG_LEVEL_ENV = "LOG_LEVEL"
