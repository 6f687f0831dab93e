"""app.integrations — External service adapter modules.

All outbound HTTP calls to third-party systems must go through an adapter
in this package, never via bare `requests` calls in services or blueprints.

Current adapters:
  accounting — Horizon mock, Horizon-compatible HTTP endpoint, Visma placeholder
"""
