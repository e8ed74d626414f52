"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name, documentation, labelnames=()):
    """Create a counter, reusing the registered one on re-import"""
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Webhook metrics
webhook_events_counter = _counter(
    'bde_webhook_events_total',
    'Total number of provider webhook events received',
    ['event_type', 'outcome']
)

# Campaign metrics
campaign_emails_counter = _counter(
    'bde_campaign_emails_total',
    'Total number of campaign emails submitted to the provider',
    ['status']
)

# Auth metrics
login_attempts_counter = _counter(
    'bde_login_attempts_total',
    'Total number of login attempts',
    ['status']
)
