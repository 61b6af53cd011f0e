from django.conf import settings

DEFAULTS = {
    'BATCH_GAP_THRESHOLD_DAYS': 7,
    'CONTENTION_MAX_ATTEMPTS': 3,
    'CONTENTION_BACKOFF_SECONDS': 0.05,
    'EXTERNAL_DUE_SOON_DAYS': 2,
    'PERMISSION_CACHE_SECONDS': 300,
    'QC_NOTIFY_ROLE': 'quality',
    'LOGISTICS_NOTIFY_ROLE': 'logistics',
    'PRODUCTION_NOTIFY_ROLE': 'production_head',
}


def erp_setting(key):
    """Read an engine setting from METALWORKS_ERP_SETTINGS, falling back to DEFAULTS"""
    configured = getattr(settings, 'METALWORKS_ERP_SETTINGS', {})
    if key in configured:
        return configured[key]
    return DEFAULTS[key]
