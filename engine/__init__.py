"""Follow-up rule engine.

Modules:
  aging       - lead aging classifier (pure)
  matcher     - rule matcher (pure)
  lifecycle   - reminder state machine, content and creation
  escalation  - periodic escalation / wake-up sweep
  analytics   - derived rule and dashboard metrics
  service     - session-scoped commands and queries
  scheduler   - APScheduler job running sweep + evaluation
"""
