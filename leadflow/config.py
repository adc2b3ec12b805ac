"""
Centralized configuration — all env vars, engine constants, enumerations.
"""
import os


def _flag(name, default='false'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── SLA ───────────────────────────────────────────────────────────────────────
SLA_WARNING_THRESHOLD_DAYS = int(os.getenv('SLA_WARNING_THRESHOLD_DAYS', '2'))

# ── Bulk import ───────────────────────────────────────────────────────────────
IMPORT_BATCH_SIZE = int(os.getenv('IMPORT_BATCH_SIZE', '50'))
IMPORT_JOB_TIMEOUT = int(os.getenv('IMPORT_JOB_TIMEOUT', '3600'))
IMPORT_REQUIRED_FIELDS = ('name', 'origin')
DEFAULT_COUNTRY_CODE = '55'

# ── Notification engine ──────────────────────────────────────────────────────
NOTIFICATIONS_ENABLED = _flag('NOTIFICATIONS_ENABLED', 'true')
NOTIFICATION_INTERVAL_SECONDS = int(os.getenv('NOTIFICATION_INTERVAL_SECONDS', '300'))
NOTIFICATION_INITIAL_DELAY_SECONDS = int(os.getenv('NOTIFICATION_INITIAL_DELAY_SECONDS', '5'))
NOTIFY_SLA_BREACHES = _flag('NOTIFY_SLA_BREACHES', 'true')
NOTIFY_STAGE_TIMEOUTS = _flag('NOTIFY_STAGE_TIMEOUTS', 'true')
NOTIFY_APPOINTMENT_REMINDERS = _flag('NOTIFY_APPOINTMENT_REMINDERS', 'true')
QUIET_HOURS_ENABLED = _flag('QUIET_HOURS_ENABLED', 'false')
QUIET_HOURS_START = os.getenv('QUIET_HOURS_START', '22:00')
QUIET_HOURS_END = os.getenv('QUIET_HOURS_END', '08:00')
QUIET_HOURS_TZ = os.getenv('QUIET_HOURS_TZ', 'UTC')

APPOINTMENT_REMINDER_MINUTES = (1440, 120, 30)
APPOINTMENT_REMINDER_WINDOW_MINUTES = 5
APPOINTMENT_LOOKAHEAD_HOURS = 24
STAGE_TIMEOUT_WARNING_DAYS = (0, 1)
SLA_SCAN_LIMIT = 200
APPOINTMENT_SCAN_LIMIT = 50

# ── Pipeline health thresholds ───────────────────────────────────────────────
HEALTH_OVERDUE_PENALTY = 30
HEALTH_STAGE_TIME_GRACE_DAYS = 5
HEALTH_STAGE_TIME_PENALTY = 2
HEALTH_CONVERSION_BONUS_CAP = 20
HEALTH_CONVERSION_BONUS_FACTOR = 0.3
BOTTLENECK_MIN_LEADS = 5
BOTTLENECK_SLA_RATIO = 0.8

# ── Lead scoring ──────────────────────────────────────────────────────────────
SCORE_MIN = 0
SCORE_MAX = 110
SCORE_CLASSIFICATION = [
    (60, 'High'),
    (30, 'Medium'),
    (0, 'Low'),
]

# ── Enumerations: permitted values and the fallback for anything else ───────
LEAD_ORIGINS = [
    'Facebook',
    'Instagram',
    'Google',
    'Referral',
    'Organic',
    'WhatsApp',
    'LinkedIn',
    'Event',
    'Other',
]

LEAD_STATUSES = ['Active', 'Customer', 'Lost', 'Inactive']

LEAD_OBJECTIONS = [
    'Price',
    'Time',
    'Priority',
    'Trust',
    'No Fit',
    'Budget',
    'Decision Maker',
    'Competitor',
    'Other',
]

ENUM_FIELDS = {
    'origin':         (LEAD_ORIGINS, 'Other'),
    'status':         (LEAD_STATUSES, 'Active'),
    'main_objection': (LEAD_OBJECTIONS, 'Other'),
}

# ── Subscription / health values ──────────────────────────────────────────────
ENTRY_STATUSES = ['Active', 'Completed', 'Archived']
HEALTH_TAGS = ['Green', 'Yellow', 'Red']
APPOINTMENT_STATUSES = ['scheduled', 'done', 'cancelled', 'rescheduled', 'no_show']
