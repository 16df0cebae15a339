"""Adapters turning external change notifications into "refresh needed"."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .events import DisposableStore
from .interfaces import ConfigurationChange, ConfigurationSource, RepositoryRef
from .logging import get_logger
from .views import CUSTOM_QUERY_CONFIGURATION, ISSUES_CONFIGURATION

if TYPE_CHECKING:
    from .coordinator import RefreshCoordinator

QUERY_SECTION = f"{ISSUES_CONFIGURATION}.{CUSTOM_QUERY_CONFIGURATION}"


class ChangeListeners:
    def __init__(
        self,
        coordinator: RefreshCoordinator,
        configuration: ConfigurationSource,
        repository: RepositoryRef,
    ):
        self._coordinator = coordinator
        self._configuration = configuration
        self._repository = repository
        self._disposables = DisposableStore()

    def attach(self) -> None:
        self._disposables.add(
            self._configuration.on_did_change_configuration.subscribe(
                self._on_configuration_changed
            )
        )
        self._disposables.add(self._repository.on_did_change_ref.subscribe(self._on_ref_changed))

    def dispose(self) -> None:
        self._disposables.dispose()

    def _on_configuration_changed(self, change: ConfigurationChange) -> None:
        if not change.affects_configuration(QUERY_SECTION):
            return
        query = self._configuration.get(ISSUES_CONFIGURATION, CUSTOM_QUERY_CONFIGURATION, None)
        get_logger().info("custom query changed", operation="config_change", query=query)
        self._coordinator.set_query(query or None)
        self._coordinator.refresh_cache_needed()

    def _on_ref_changed(self, *_: object) -> None:
        ref = self._repository.current_ref
        if not self._coordinator.record_ref(ref):
            return
        get_logger().info("upstream ref changed", operation="ref_change", ref=ref)
        self._coordinator.refresh_cache_needed()
