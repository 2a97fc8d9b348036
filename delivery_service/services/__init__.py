from .dispatch_queue import DispatchQueue, BatchItemError
from .delivery_orchestrator import (
    DeliveryOrchestrator, BackendSelector, build_backends, create_delivery_orchestrator
)

__all__ = [
    "DispatchQueue",
    "BatchItemError",
    "DeliveryOrchestrator",
    "BackendSelector",
    "build_backends",
    "create_delivery_orchestrator",
]
