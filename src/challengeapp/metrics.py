from prometheus_client import Counter, Histogram, start_http_server
from .config import settings
from .utils.logging import setup_logger

logger = setup_logger(__name__)

# Enrollment metrics
plans_submitted_total = Counter(
    'challenge_plans_submitted_total',
    'Total number of payment plans created or replaced',
    ['payment_type']
)

installment_updates_total = Counter(
    'challenge_installment_updates_total',
    'Total number of installment state changes',
    ['state']
)

# Activity metrics
activities_recorded_total = Counter(
    'challenge_activities_recorded_total',
    'Total number of activities recorded'
)

activity_rejections_total = Counter(
    'challenge_activity_rejections_total',
    'Total number of rejected activity submissions',
    ['reason']
)

# Ranking metrics
ranking_duration = Histogram(
    'challenge_ranking_duration_seconds',
    'Ranking computation duration in seconds'
)

def start_metrics_server(port: int = None):
    """Start the Prometheus metrics server."""
    port = port or settings.metrics_port
    try:
        start_http_server(port)
        logger.info(f"Started Prometheus metrics server on port {port}")
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        raise
