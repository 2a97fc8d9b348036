from fastapi import Request

from delivery_service.services.delivery_orchestrator import DeliveryOrchestrator


def get_orchestrator(request: Request) -> DeliveryOrchestrator:
    """Orchestrator created in the application lifespan."""
    return request.app.state.orchestrator
