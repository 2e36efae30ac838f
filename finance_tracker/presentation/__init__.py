"""Presentation package: currency conversion and the dashboard view model."""

from .view_model import CurrencyConverter, DashboardView, format_currency  # noqa: F401
