import os
import pathlib
from dotenv import load_dotenv

load_dotenv()

redis_host = os.getenv("REDIS_HOST", "localhost")
redis_port = int(os.getenv("REDIS_PORT", "6379"))

plugin_id = os.getenv("PLUGIN_ID", "myz-dice")
plugin_version = os.getenv("PLUGIN_VERSION", "1.0.0")
player_id = os.getenv("PLAYER_ID", "local-player")

availability_timeout = float(os.getenv("AVAILABILITY_TIMEOUT", "3.0"))
roll_timeout = float(os.getenv("ROLL_TIMEOUT", "30.0"))
heartbeat_interval = int(os.getenv("HEARTBEAT_INTERVAL", "15"))

catalog_db_path = os.getenv(
    "CATALOG_DB_PATH",
    str(pathlib.Path(__file__).parent / "dice_catalog.sqlite3"),
)
enable_responder = os.getenv("ENABLE_RESPONDER", "true").lower() not in ("0", "false", "no")

INTEGRATION_CHANNEL = "integration"
STATE_CHANNEL = "state"


def namespaced(name: str, namespace: str = plugin_id) -> str:
    """Prefix a channel or key name with the plugin namespace.

    Args:
        name (str): Generic channel or key name
        namespace (str, optional): Stable plugin identifier. Defaults to PLUGIN_ID.

    Returns:
        str: Name that cannot collide with other extensions on the same medium
    """
    return f"{namespace}/{name}"


if __name__ == "__main__":
    print(redis_host, redis_port, plugin_id, plugin_version, player_id)
