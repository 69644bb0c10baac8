from .env import load_project_dotenv  # noqa: F401
from .cache import TTLCache  # noqa: F401
from .keyed_lock import KeyedLock  # noqa: F401

# Automatically load project-level .env once utils is imported.
load_project_dotenv()
