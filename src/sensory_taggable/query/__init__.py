from .filters import ByName, ById, TagRef, ClauseKind, FilterClause, TagFilters
from .builder import ANY_OF_WEIGHT_BIAS, QueryPlan, ResolvedClause, TagQuery, compile_plan

__all__ = [
    "ByName", "ById", "TagRef", "ClauseKind", "FilterClause", "TagFilters",
    "ANY_OF_WEIGHT_BIAS", "QueryPlan", "ResolvedClause", "TagQuery", "compile_plan",
]
