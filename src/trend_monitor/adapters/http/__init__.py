"""HTTP adapters."""

from trend_monitor.adapters.http.budgeted_client import BudgetedHttpClient, GlobalByteBudget, HttpResponse

__all__ = ["BudgetedHttpClient", "GlobalByteBudget", "HttpResponse"]
