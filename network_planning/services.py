"""Collaborator contracts consumed by the job orchestrator and workflows.

Scenario, configuration, result and audit persistence live outside the
planning engine.  The engine talks to them through the protocols below; the
in-memory implementations are used in tests and when the engine is embedded
without a database.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple
import copy
import logging

from .errors import PersistenceError
from .models.warehouse import ForecastRow, SKU
from .network.city_lookup import CityLookup, StaticCityLookup

logger = logging.getLogger(__name__)


class ScenarioService(Protocol):
    def get_scenario(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        ...

    def update_status(self, scenario_id: int, status: str) -> None:
        ...


class WarehouseConfigService(Protocol):
    def get_warehouse_config(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        ...


class TransportConfigService(Protocol):
    def get_transport_config(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        ...


class OptimizationResultService(Protocol):
    def update_result(
        self,
        run_id: str,
        status: str,
        results: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class AuditLogService(Protocol):
    def log_event(self, action: str, scenario_id: int, details: Dict[str, Any]) -> None:
        ...


class ForecastSource(Protocol):
    def get_forecast(self, scenario_id: int) -> Tuple[List[ForecastRow], List[SKU]]:
        ...


# ============================================================================
# In-memory implementations
# ============================================================================


class InMemoryScenarioService:
    """Scenario records keyed by id."""

    def __init__(self, scenarios: Optional[Dict[int, Dict[str, Any]]] = None):
        self.scenarios: Dict[int, Dict[str, Any]] = copy.deepcopy(scenarios or {})
        self.status_history: List[Tuple[int, str]] = []

    def add_scenario(self, scenario_id: int, name: str = "", **fields) -> None:
        self.scenarios[scenario_id] = {'id': scenario_id, 'name': name, 'status': 'draft', **fields}

    def get_scenario(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        scenario = self.scenarios.get(scenario_id)
        return copy.deepcopy(scenario) if scenario is not None else None

    def update_status(self, scenario_id: int, status: str) -> None:
        if scenario_id not in self.scenarios:
            raise PersistenceError(f"Scenario {scenario_id} not found")
        self.scenarios[scenario_id]['status'] = status
        self.status_history.append((scenario_id, status))


class InMemoryConfigService:
    """Warehouse and transport configuration overrides per scenario."""

    def __init__(self):
        self.warehouse: Dict[int, Dict[str, Any]] = {}
        self.transport: Dict[int, Dict[str, Any]] = {}

    def set_warehouse_config(self, scenario_id: int, config: Dict[str, Any]) -> None:
        self.warehouse[scenario_id] = dict(config)

    def set_transport_config(self, scenario_id: int, config: Dict[str, Any]) -> None:
        self.transport[scenario_id] = dict(config)

    def get_warehouse_config(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.warehouse.get(scenario_id))

    def get_transport_config(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.transport.get(scenario_id))


class InMemoryResultService:
    """Latest result record per run id."""

    def __init__(self):
        self.results: Dict[str, Dict[str, Any]] = {}

    def update_result(
        self,
        run_id: str,
        status: str,
        results: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.results[run_id] = {
            'run_id': run_id,
            'status': status,
            'results': results,
            'error': error,
            'updated_at': datetime.now().isoformat(),
        }


class InMemoryAuditLog:
    """Append-only audit event list."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def log_event(self, action: str, scenario_id: int, details: Dict[str, Any]) -> None:
        self.events.append({
            'action': action,
            'scenario_id': scenario_id,
            'details': details,
            'timestamp': datetime.now().isoformat(),
        })

    def actions(self) -> List[str]:
        return [e['action'] for e in self.events]


class InMemoryForecastSource:
    """Forecast and SKU rows per scenario."""

    def __init__(self):
        self.data: Dict[int, Tuple[List[ForecastRow], List[SKU]]] = {}

    def set_forecast(self, scenario_id: int, forecast: List[ForecastRow], skus: List[SKU]) -> None:
        self.data[scenario_id] = (list(forecast), list(skus))

    def get_forecast(self, scenario_id: int) -> Tuple[List[ForecastRow], List[SKU]]:
        if scenario_id not in self.data:
            return [], []
        forecast, skus = self.data[scenario_id]
        return list(forecast), list(skus)


@dataclass
class PlanningServices:
    """Bundle of collaborators handed to the orchestrator and workflows."""
    scenarios: ScenarioService = field(default_factory=InMemoryScenarioService)
    warehouse_configs: WarehouseConfigService = field(default_factory=InMemoryConfigService)
    transport_configs: TransportConfigService = field(default_factory=InMemoryConfigService)
    results: OptimizationResultService = field(default_factory=InMemoryResultService)
    audit_log: AuditLogService = field(default_factory=InMemoryAuditLog)
    forecasts: ForecastSource = field(default_factory=InMemoryForecastSource)
    city_lookup: CityLookup = field(default_factory=StaticCityLookup)

    @classmethod
    def in_memory(cls) -> 'PlanningServices':
        """All collaborators in memory, with one config service for both config kinds."""
        configs = InMemoryConfigService()
        return cls(warehouse_configs=configs, transport_configs=configs)
