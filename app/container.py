"""Dependency injection container.

Route handlers resolve the evaluation services through this container so tests
can swap them out:

    with container.evaluation_service.override(FakeEvaluationService()):
        response = client.post("/evaluations/calculate", json=...)
"""

from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]


def _get_evaluation_service():
    from app.services.evaluation.service import evaluation_service
    return evaluation_service


def _get_evaluation_analytics():
    from app.services.evaluation.analytics import evaluation_analytics
    return evaluation_analytics


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Services are stateless managers, so they are provided as singletons.
    """

    evaluation_service = providers.Singleton(_get_evaluation_service)
    evaluation_analytics = providers.Singleton(_get_evaluation_analytics)


# Global container instance
container = Container()


def get_container() -> Container:
    """Get the global container instance."""
    return container
