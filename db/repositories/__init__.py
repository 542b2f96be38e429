"""Repository layer for the follow-up rule engine.

Every function takes an AsyncSession and a company_id namespace key:
- leads: get, list_for_company, upsert, delete, list_company_ids
- rules: create, get, list_for_company, update_fields, soft_delete, increment_triggered
- reminders: create_with_trigger, get, list_for_company, list_for_lead,
             list_by_status, list_open_for_rule, list_open_for_lead, get_due_pending
"""
