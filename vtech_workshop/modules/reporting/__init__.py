from .financial import TERM_NAMES, DashboardStats, FinancialAggregator, FinancialSummary, TermResult

__all__ = ["TERM_NAMES", "DashboardStats", "FinancialAggregator", "FinancialSummary", "TermResult"]
