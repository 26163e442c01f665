from .analyzer import PerformanceAnalyzer, grade_for, regression_severity, relative_change
from .statistics import LinearFit, Outlier, find_outliers, linear_trend

__all__ = [
    "LinearFit",
    "Outlier",
    "PerformanceAnalyzer",
    "find_outliers",
    "grade_for",
    "linear_trend",
    "regression_severity",
    "relative_change",
]
