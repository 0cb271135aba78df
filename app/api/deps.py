from app.db import get_db  # noqa: F401


def get_evaluation_service():
    """Get the evaluation service from the container."""
    from app.container import container
    return container.evaluation_service()


def get_evaluation_analytics():
    """Get the evaluation analytics service from the container."""
    from app.container import container
    return container.evaluation_analytics()
