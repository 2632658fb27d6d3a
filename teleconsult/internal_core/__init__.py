from .config import AppConfig, load_config
from .room_registry import RoomRegistry

__all__ = ["AppConfig", "load_config", "RoomRegistry"]
