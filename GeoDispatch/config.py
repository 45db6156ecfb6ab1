import os
import json
import dotenv

from GeoDispatch.utils.logger import logger
from typing import Any, Dict, List, Optional

# load config.json

CONFIG_PATH = os.getenv(
    "GEODISPATCH_CONFIG",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "config", "config.json"),
)


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            config = json.load(f)
        logger.info(f"✅ Loaded config from {path}")
        return config
    except FileNotFoundError:
        logger.warning(f"⚠️ Config file not found at {path}. Using default values.")
        return {}
    except json.JSONDecodeError as e:
        logger.error(f"❌ Invalid JSON in {path}: {e}. Using default values.")
        return {}


config = load_config()

# Read environment variables from .env file
env_file = os.path.join(os.getcwd(), ".env")
dotenv.load_dotenv(env_file, override=False)


def get_env_var(name: str, default=None) -> Optional[str]:
    value = os.getenv(name, default)
    if value is None or value == '':
        logger.debug(f"Missing environment variable: {name}. Using default: {default}")
        return default
    return value


def get_env_list(env_var_name: str, default=None) -> List[str]:
    if default is None:
        default = []
    value = os.getenv(env_var_name, '')
    if not value:
        logger.debug(f"Missing environment variable: {env_var_name}. Using default: {default}")
        return default
    return [item.strip() for item in value.split(',') if item.strip()]


def get_env_int(name: str, default=None) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        logger.debug(f"Missing environment variable: {name}. Using default: {default}")
        return default
    try:
        return int(value)
    except ValueError:
        logger.error(f"❌ Invalid value for environment variable {name}: {value}. Using default: {default}")
        return default


# Log Level
log_level = get_env_var("LOG_LEVEL", "INFO").upper()
log_file = get_env_var("LOG_FILE", "FALSE").upper() == "TRUE"

# Server
geodispatch_host = get_env_var("GEODISPATCH_HOST", "0.0.0.0")
geodispatch_port = get_env_int("GEODISPATCH_PORT", get_env_int("PORT", 5000))

# Cross-origin: "*" allows every origin
cors_origins: List[str] = get_env_list("CORS_ORIGINS", ["*"])

# Dispatch
dispatch_config = config.get("dispatch", {})
send_timeout_seconds: float = float(dispatch_config.get("send_timeout_seconds", 5))
max_message_length: int = int(dispatch_config.get("max_message_length", 2000))

# WebSocket
heartbeat_seconds: float = float(config.get("websocket", {}).get("heartbeat_seconds", 30))
