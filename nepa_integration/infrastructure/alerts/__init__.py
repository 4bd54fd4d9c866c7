"""Alert notification channels (webhook, Slack, Teams, logging).
Bounded Context: Alerting
"""
