from .channel import WebSocketChannel
from .coordinator import ConsultationCoordinator, build_coordinator

__all__ = ["ConsultationCoordinator", "WebSocketChannel", "build_coordinator"]
