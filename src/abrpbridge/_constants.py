"""Internal constants shared across the library."""

DEVICE_CODE_ENDPOINT = "https://customer.bmwgroup.com/gcdm/oauth/device/code"
TOKEN_ENDPOINT = "https://customer.bmwgroup.com/gcdm/oauth/token"
MANUAL_VERIFY_URL = "https://customer.bmwgroup.com/oneid/link"
DEVICE_CODE_SCOPE = "authenticate_user openid cardata:api:read cardata:streaming:read"
DEVICE_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

REST_BASE_URL = "https://api-cardata.bmwgroup.com"
REST_API_VERSION = "v1"
DEFAULT_CONTAINER_NAME = "abrp-live-connector"
DEFAULT_CONTAINER_PURPOSE = "abrp"

STREAM_HOST = "customer.streaming-cardata.bmwgroup.com"
STREAM_PORT = 9000

ABRP_TELEMETRY_URL = "https://api.iternio.com/1/tlm/send"

DEFAULT_TOKENS_PATH = "/data/bmw.tokens.json"

# Device-code polling never runs faster than this, whatever the provider says.
MIN_POLL_INTERVAL_SECONDS = 5.0
SLOW_DOWN_STEP_SECONDS = 5.0
DEFAULT_DEVICE_CODE_EXPIRES_IN = 900.0
