"""Test fixtures for solver adapter and optimization model testing."""

from .solver_mocks import create_mock_solver_config, create_unavailable_solver_config

__all__ = ['create_mock_solver_config', 'create_unavailable_solver_config']
