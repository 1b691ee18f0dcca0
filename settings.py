from pathlib import Path
from config.loader import get_config_loader

# Get the config loader instance
config = get_config_loader()

# Local configuration directory (client credentials live here, tokens live in the keyring)
CONFIG_DIR = config.get("FRONTCLI_CONFIG_DIR", str(Path.home() / ".config" / "frontcli"))
LOG_LEVEL = config.get("FRONTCLI_LOG_LEVEL", "warning")
DEBUG_LOG_FILE = config.get("FRONTCLI_DEBUG_LOG_FILE", "frontcli_debug.log")

# Front API and OAuth endpoints
API_BASE = config.get("FRONTCLI_API_BASE", "https://api2.frontapp.com")
AUTHORIZE_URL = config.get("FRONTCLI_AUTHORIZE_URL", "https://app.frontapp.com/oauth/authorize")
TOKEN_URL = config.get("FRONTCLI_TOKEN_URL", "https://app.frontapp.com/oauth/token")
DEFAULT_REDIRECT_URI = "http://localhost:8484/callback"
# Space separated; Front grants the scopes configured on the app when empty
SCOPES = config.get("FRONTCLI_SCOPES", "")

DEFAULT_CLIENT_NAME = "default"

# Timeout configuration
# Connection timeout: Time to establish TCP connection
CONNECT_TIMEOUT = config.get("FRONTCLI_CONNECT_TIMEOUT", 10.0)
# Request timeout: Total timeout for a single API call
REQUEST_TIMEOUT = config.get("FRONTCLI_REQUEST_TIMEOUT", 30.0)
# How long `auth login` waits for the browser redirect (seconds)
LOGIN_TIMEOUT = config.get("FRONTCLI_LOGIN_TIMEOUT", 180.0)

# Access tokens are refreshed this many seconds before they expire
TOKEN_EXPIRY_SKEW = 60

# Circuit breaker
CIRCUIT_BREAKER_THRESHOLD = config.get("FRONTCLI_CIRCUIT_BREAKER_THRESHOLD", 5)
CIRCUIT_BREAKER_COOLDOWN = config.get("FRONTCLI_CIRCUIT_BREAKER_COOLDOWN", 30.0)

# Keyring service name for stored refresh tokens
KEYRING_SERVICE = config.get("FRONTCLI_KEYRING_SERVICE", "frontcli")

USER_AGENT = "frontcli/0.1.0"
