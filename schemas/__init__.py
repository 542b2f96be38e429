from .lead import (
    LeadSnapshot,
    AgingBucket,
    LeadAging,
    AgingOverview,
)
from .rule import (
    RuleConditions,
    FollowUpRuleInput,
    FollowUpRuleUpdate,
)
from .reminder import (
    TriggerCandidate,
    RecommendationContext,
    Recommendation,
    ReminderContent,
    OptimizationInsight,
    OptimizationInsightsOutput,
    InteractionEvent,
)
from .analytics import (
    RuleAnalytics,
    DashboardMetrics,
)

__all__ = [
    "LeadSnapshot", "AgingBucket", "LeadAging", "AgingOverview",
    "RuleConditions", "FollowUpRuleInput", "FollowUpRuleUpdate",
    "TriggerCandidate", "RecommendationContext", "Recommendation", "ReminderContent",
    "OptimizationInsight", "OptimizationInsightsOutput", "InteractionEvent",
    "RuleAnalytics", "DashboardMetrics",
]
