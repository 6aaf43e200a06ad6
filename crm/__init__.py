"""
Alarm CRM Workflow Engine

In-memory CRM and dispatch core for a security-alarm service company:
customers, service tickets and jobs, inventory, quotes, invoices,
monitoring subscriptions and the sales lead pipeline, all driven through
one status-transition engine with audit history.
"""

__version__ = "0.1.0"
